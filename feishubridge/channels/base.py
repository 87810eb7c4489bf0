"""聊天渠道的基础接口。

渠道负责维持与聊天平台的长连接：入站事件交给消息总线，
总线上的出站消息（回复、表情）由send()发回平台。
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from feishubridge.bus.events import InboundEvent, OutboundMessage
from feishubridge.bus.queue import MessageBus
from feishubridge.utils.reconnect import ConnectionState


class BaseChannel(ABC):
    """
    渠道实现的抽象基类。

    子类实现start()/stop()/send()；start()应当自己处理断线重连，
    收到的事件统一经过_handle_message()进入消息总线。
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        """
        Args:
            config: 渠道配置，可带allow_from白名单
            bus: 消息总线
        """
        self.config = config
        self.bus = bus
        self.state = ConnectionState.DISCONNECTED
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """连接平台并持续接收事件，直到stop()被调用才返回。"""

    @abstractmethod
    async def stop(self) -> None:
        """断开连接并释放资源。"""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        把一条出站消息发送到平台。

        Args:
            msg: 回复文本或表情
        """

    def is_allowed(self, sender_id: str) -> bool:
        """
        发送者是否在白名单中。

        Args:
            sender_id: 发送者ID

        Returns:
            未配置allow_from时总是True
        """
        allow_from = getattr(self.config, "allow_from", None) or []
        return not allow_from or str(sender_id) in allow_from

    async def _handle_message(self, event: InboundEvent) -> None:
        """
        把入站事件放入消息总线，不等待路由结果。

        白名单之外的发送者只记录日志。

        Args:
            event: 入站事件
        """
        if not self.is_allowed(event.sender_id):
            logger.warning(
                f"Access denied for sender {event.sender_id} on channel {self.name}, "
                f"add it to feishu.allowFrom to grant access"
            )
            return

        await self.bus.publish_inbound(event)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED
