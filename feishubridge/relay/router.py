"""消息路由器：桥接器的核心处理流程。

对每个入站事件依次执行：
1. 去重（同一条消息只处理一次）
2. 非文本消息回复固定提示
3. 解析消息内容，去掉@提及
4. 添加"处理中"表情，发送完成后才开始第5步
5. 后端已连接则转发给智能体后端，否则走直连补全
6. 回复结果；任何失败都回复错误信息，用户一定会收到响应
"""

import asyncio
import json

from loguru import logger

from feishubridge.backend.connector import AgentBackend
from feishubridge.bus.events import InboundEvent, Mention, OutboundMessage
from feishubridge.bus.queue import MessageBus
from feishubridge.errors import ConfigError, ParseError
from feishubridge.providers.fallback import DirectCallFallback
from feishubridge.relay.dedup import DedupStore
from feishubridge.utils.helpers import truncate_string

UNSUPPORTED_TYPE_REPLY = "目前只支持文本消息"
ERROR_REPLY_PREFIX = "处理消息时出错: "
EMPTY_REPLY = "（智能体没有返回任何内容）"


def extract_text(raw_content: str, mentions: list[Mention]) -> str:
    """
    从文本消息的content中取出用户输入。

    Args:
        raw_content: 消息的content字段，形如'{"text": "@_user_1 你好"}'
        mentions: 消息中的@提及

    Returns:
        去掉所有@提及并去除首尾空白后的文本

    Raises:
        ParseError: content不是合法的文本消息JSON
    """
    try:
        content = json.loads(raw_content)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Unparseable message content: {e}") from e

    if not isinstance(content, dict):
        raise ParseError("Message content is not a JSON object")

    text = content.get("text") or ""
    if not isinstance(text, str):
        raise ParseError("Message text is not a string")

    for mention in mentions:
        text = text.replace(mention.key, "")
    return text.strip()


class MessageRouter:
    """
    从消息总线消费入站事件，并为每个事件启动一个独立的处理任务。

    不同消息之间并发处理、互不等待，回复顺序不保证与到达顺序一致；
    单条消息内部的各个步骤严格按顺序执行。
    """

    def __init__(
        self,
        bus: MessageBus,
        backend: AgentBackend,
        fallback: DirectCallFallback,
        dedup: DedupStore | None = None,
        reaction_emoji: str = "PROCESSING",
    ):
        self.bus = bus
        self.backend = backend
        self.fallback = fallback
        self.dedup = dedup or DedupStore()
        self.reaction_emoji = reaction_emoji
        self.dropped_unparseable = 0  # 内容无法解析而被丢弃的消息数
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    async def run(self) -> None:
        """
        运行路由循环，直到stop()被调用。

        每个事件在独立的任务中处理，任务引用保存在集合中直到完成。
        """
        self._running = True
        logger.info("Message router started")

        while self._running:
            try:
                event = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            task = asyncio.create_task(self.route(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        """停止路由循环。已经开始处理的消息会继续完成。"""
        self._running = False
        logger.info("Message router stopping")

    def cancel_all(self) -> None:
        """取消所有仍在处理中的消息任务。"""
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def route(self, event: InboundEvent) -> None:
        """
        处理单个入站事件。

        Args:
            event: 入站事件
        """
        if not event.message_id:
            return

        if self.dedup.check_and_mark(event.message_id):
            logger.debug(f"Duplicate message {event.message_id} dropped")
            return

        if event.message_type != "text":
            await self._reply(event, UNSUPPORTED_TYPE_REPLY)
            return

        try:
            text = extract_text(event.raw_content, event.mentions)
        except ParseError as e:
            self.dropped_unparseable += 1
            logger.debug(f"Message {event.message_id} dropped: {e}")
            return

        if not text:
            return

        logger.info(f"Received message [{event.sender_id}]: {truncate_string(text, 80)}")

        await self.bus.publish_outbound(OutboundMessage(
            message_id=event.message_id,
            content=self.reaction_emoji,
            kind="reaction",
        ))

        try:
            reply = await self._dispatch(text, event.sender_id)
        except ConfigError as e:
            logger.warning(f"Cannot process message {event.message_id}: {e}")
            reply = str(e)
        except Exception as e:
            logger.error(f"Error processing message {event.message_id}: {e}")
            reply = f"{ERROR_REPLY_PREFIX}{e}"
        else:
            reply = reply or EMPTY_REPLY
            logger.info(f"Replying to {event.message_id}: {truncate_string(reply, 100)}")

        await self._reply(event, reply)

    async def _dispatch(self, text: str, user_id: str) -> str:
        """后端已连接时转发给后端，否则使用直连补全。"""
        if self.backend.is_connected:
            return await self.backend.send(text, user_id)
        return await self.fallback.complete(text)

    async def _reply(self, event: InboundEvent, content: str) -> None:
        await self.bus.publish_outbound(OutboundMessage(
            message_id=event.message_id,
            content=content,
            metadata={"sender_id": event.sender_id, "chat_id": event.chat_id},
        ))
