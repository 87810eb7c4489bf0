"""消息总线模块，用于解耦飞书长连接与消息路由。"""

from feishubridge.bus.events import InboundEvent, Mention, OutboundMessage, MESSAGE_RECEIVE_EVENT
from feishubridge.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundEvent", "Mention", "OutboundMessage", "MESSAGE_RECEIVE_EVENT"]
