"""
feishubridge - 飞书 × MoltBot 桥接器

通过WebSocket长连接对接飞书，无需公网服务器。
"""

__version__ = "0.1.0"
__logo__ = "🌉"
