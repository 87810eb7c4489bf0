"""使用LiteLLM实现的LLM提供者。

直连补全默认调用Anthropic，但模型名带上LiteLLM的前缀即可切换到其他提供者
（例如"openai/gpt-4o"）。
"""

from typing import Any

import litellm
from litellm import acompletion

from feishubridge.providers.base import LLMProvider, LLMResponse

DEFAULT_MODEL = "anthropic/claude-sonnet-4-20250514"


class LiteLLMProvider(LLMProvider):
    """
    通过LiteLLM统一接口访问模型的提供者。

    调用失败时不抛出异常，而是返回finish_reason="error"的响应，
    由调用方决定如何呈现。
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.timeout = timeout

        litellm.suppress_debug_info = True
        litellm.drop_params = True

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """
        通过LiteLLM发送一次补全请求。

        Args:
            messages: 消息列表，每条包含'role'和'content'
            model: 模型名，默认使用default_model
            max_tokens: 回复的最大token数

        Returns:
            模型回复；调用失败时为错误响应
        """
        request: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "timeout": self.timeout,
        }
        # 密钥直接传入，不依赖ANTHROPIC_API_KEY等环境变量
        for key, value in (("api_key", self.api_key), ("api_base", self.api_base)):
            if value:
                request[key] = value

        try:
            response = await acompletion(**request)
        except Exception as e:
            return LLMResponse(content=f"LiteLLM request failed: {e}", finish_reason="error")
        return self._to_response(response)

    @staticmethod
    def _to_response(response: Any) -> LLMResponse:
        """把LiteLLM的ModelResponse转换为LLMResponse。"""
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage={
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            } if usage else {},
        )

    def get_default_model(self) -> str:
        return self.default_model
