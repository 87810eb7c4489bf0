"""智能体后端连接模块。"""

from feishubridge.backend.connector import AgentBackend, PendingRequest

__all__ = ["AgentBackend", "PendingRequest"]
