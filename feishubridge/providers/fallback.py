"""直连补全：智能体后端不可用时的备用路径。

每条消息只做一次同步的补全调用，没有重试，也没有请求关联。
"""

from loguru import logger

from feishubridge.config.schema import FallbackConfig
from feishubridge.errors import CompletionError, ConfigError
from feishubridge.providers.base import LLMProvider
from feishubridge.providers.litellm_provider import LiteLLMProvider

FALLBACK_NOT_CONFIGURED = "错误: 未配置 ANTHROPIC_API_KEY，且无法连接到 MoltBot Gateway"


class DirectCallFallback:
    """
    直接调用补全接口。

    未配置提供者（没有API密钥）时，complete()抛出带固定提示语的ConfigError，
    路由器会把这条提示原样回复给用户。
    """

    def __init__(self, provider: LLMProvider | None, max_tokens: int = 2048):
        self.provider = provider
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config: FallbackConfig) -> "DirectCallFallback":
        """根据配置创建；没有API密钥时不创建提供者。"""
        provider = None
        if config.api_key:
            provider = LiteLLMProvider(
                api_key=config.api_key,
                api_base=config.api_base,
                default_model=config.model,
            )
        return cls(provider, max_tokens=config.max_tokens)

    @property
    def configured(self) -> bool:
        return self.provider is not None

    async def complete(self, text: str) -> str:
        """
        对单条用户消息做一次补全。

        Args:
            text: 用户消息

        Returns:
            模型回复文本

        Raises:
            ConfigError: 未配置API密钥
            CompletionError: 提供者返回错误
        """
        if self.provider is None:
            raise ConfigError(FALLBACK_NOT_CONFIGURED)

        logger.info(f"Agent backend unavailable, calling {self.provider.get_default_model()} directly")
        response = await self.provider.chat(
            messages=[{"role": "user", "content": text}],
            max_tokens=self.max_tokens,
        )
        if response.is_error:
            raise CompletionError(response.content or "completion failed")
        return response.content or ""
