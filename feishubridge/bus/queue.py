"""用于解耦飞书长连接与消息路由的异步消息总线。

长连接把入站事件放入队列后立即返回（从而可以立刻ack），路由器从队列消费。
路由器产生的回复和表情直接交给订阅者（飞书渠道）发送：每条消息的处理任务
自己等待发送完成，一条慢请求不会拖住其他消息的回复。
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from feishubridge.bus.events import InboundEvent, OutboundMessage

OutboundHandler = Callable[[OutboundMessage], Awaitable[None]]


class MessageBus:
    """
    消息总线。

    - inbound: 渠道 → 路由器，队列
    - outbound: 路由器 → 订阅者，publish_outbound按订阅顺序逐个等待
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()
        self._outbound_subscribers: list[OutboundHandler] = []

    async def publish_inbound(self, event: InboundEvent) -> None:
        """渠道收到的事件入队。"""
        await self.inbound.put(event)

    async def consume_inbound(self) -> InboundEvent:
        """取下一条入站事件，队列为空时等待。"""
        return await self.inbound.get()

    def subscribe_outbound(self, callback: OutboundHandler) -> None:
        """
        注册出站消息的处理者。

        Args:
            callback: 接收OutboundMessage的异步函数
        """
        self._outbound_subscribers.append(callback)

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """
        把回复或表情交给所有订阅者，等它们处理完再返回。

        订阅者抛出的异常只记录日志，不会传给发布者。

        Args:
            msg: 出站消息
        """
        for callback in self._outbound_subscribers:
            try:
                await callback(msg)
            except Exception as e:
                logger.error(f"Error dispatching {msg.kind} for {msg.message_id}: {e}")

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()
