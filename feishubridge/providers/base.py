"""LLM提供者的基础接口。

直连补全（备用路径）通过此接口调用模型，不关心具体的提供者。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """
    一次补全调用的结果。

    finish_reason为"error"时，content中是错误描述而不是模型输出。
    """
    content: str | None
    finish_reason: str = "stop"  # stop、length、error等
    usage: dict[str, int] = field(default_factory=dict)  # token用量

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error"


class LLMProvider(ABC):
    """补全接口提供者的抽象基类。"""

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """
        发送一次补全请求。

        实现不应抛出异常，失败时返回finish_reason="error"的响应。

        Args:
            messages: 消息列表，每条包含'role'和'content'
            model: 模型名（提供者特定），None表示默认模型
            max_tokens: 回复的最大token数

        Returns:
            LLMResponse
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """默认使用的模型名。"""
