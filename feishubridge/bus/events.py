"""消息总线的事件类型。

此模块定义了消息总线使用的数据结构：
- InboundEvent: 从飞书长连接收到的消息事件
- OutboundMessage: 要发送回飞书的回复或表情
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# 飞书"接收消息"事件类型
MESSAGE_RECEIVE_EVENT = "im.message.receive_v1"


@dataclass
class Mention:
    """消息中的一个@提及。key是正文中的占位文本，例如"@_user_1"。"""
    key: str
    name: str = ""
    open_id: str = ""


@dataclass
class InboundEvent:
    """
    从飞书长连接收到的一条消息事件。

    每个事件帧构造一次，路由完成后即丢弃，不做持久化。
    """

    event_id: str  # 事件ID（用于ack）
    event_type: str  # 事件类型，例如im.message.receive_v1
    message_id: str  # 消息ID（用于去重、回复和添加表情）
    message_type: str  # 消息类型：text, image, post等
    raw_content: str  # 原始content字段（JSON字符串）
    sender_id: str  # 发送者user_id
    chat_id: str = ""  # 会话ID
    mentions: list[Mention] = field(default_factory=list)  # @提及列表
    timestamp: datetime = field(default_factory=datetime.now)  # 收到时间

    @classmethod
    def from_payload(cls, header: dict[str, Any], event: dict[str, Any]) -> "InboundEvent | None":
        """
        从飞书事件帧的header和event部分构造事件。

        Args:
            header: 帧的header字段
            event: 帧的event字段

        Returns:
            构造的事件；event中没有message时返回None
        """
        message = event.get("message") or {}
        if not message:
            return None

        sender_ids = (event.get("sender") or {}).get("sender_id") or {}
        sender_id = sender_ids.get("user_id") or sender_ids.get("open_id") or "unknown"

        mentions = []
        for raw in message.get("mentions") or []:
            key = raw.get("key")
            if not key:
                continue
            mentions.append(Mention(
                key=key,
                name=raw.get("name") or "",
                open_id=(raw.get("id") or {}).get("open_id") or "",
            ))

        return cls(
            event_id=str(header.get("event_id") or ""),
            event_type=str(header.get("event_type") or ""),
            message_id=str(message.get("message_id") or ""),
            message_type=str(message.get("message_type") or ""),
            raw_content=message.get("content") or "",
            sender_id=str(sender_id),
            chat_id=str(message.get("chat_id") or ""),
            mentions=mentions,
        )


@dataclass
class OutboundMessage:
    """
    要发送到飞书的消息。

    kind为"text"时content是回复文本；为"reaction"时content是表情类型。
    两者都以message_id指定的入站消息为目标。
    """

    message_id: str  # 要回复/添加表情的消息ID
    content: str  # 回复文本或表情类型
    kind: Literal["text", "reaction"] = "text"
    metadata: dict[str, Any] = field(default_factory=dict)  # 附加信息（日志用）
