"""LLM提供者模块，用于直连补全备用路径。"""

from feishubridge.providers.base import LLMProvider, LLMResponse
from feishubridge.providers.fallback import DirectCallFallback, FALLBACK_NOT_CONFIGURED
from feishubridge.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider", "DirectCallFallback", "FALLBACK_NOT_CONFIGURED"]
