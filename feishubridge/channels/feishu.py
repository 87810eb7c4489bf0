"""使用WebSocket长连接实现的飞书渠道。

此模块实现了飞书聊天渠道。桥接器主动连接飞书，无需公网地址：
1. 用tenant_access_token换取长连接地址并建立WebSocket连接
2. 每30秒发送一次ping保持连接
3. 收到"接收消息"事件后放入消息总线，并立即回复ack
4. 断开后按指数退避（1s起，60s封顶）无限重连
"""

import asyncio
import json
from typing import Any

import websockets
from loguru import logger

from feishubridge.bus.events import InboundEvent, OutboundMessage, MESSAGE_RECEIVE_EVENT
from feishubridge.bus.queue import MessageBus
from feishubridge.channels.base import BaseChannel
from feishubridge.config.schema import FeishuConfig
from feishubridge.errors import FeishuConnectionError
from feishubridge.feishu.api import FeishuAPI
from feishubridge.utils.reconnect import ConnectionState, ExponentialBackoff


class FeishuChannel(BaseChannel):
    """
    飞书长连接渠道。

    连接状态：DISCONNECTED → CONNECTING（获取URL、打开连接）→ CONNECTED
    （接收事件、定时ping）→ 关闭或出错后回到DISCONNECTED并安排重连。
    同一时间只有一个连接尝试：start()只能运行一次。
    """

    name = "feishu"

    def __init__(self, config: FeishuConfig, bus: MessageBus, api: FeishuAPI):
        super().__init__(config, bus)
        self.config: FeishuConfig = config
        self.api = api
        self._ws: Any = None
        self._heartbeat_task: asyncio.Task | None = None
        self._backoff = ExponentialBackoff(
            initial=config.reconnect_initial_delay_s,
            cap=config.reconnect_max_delay_s,
        )

    async def start(self) -> None:
        """
        启动飞书长连接。

        持续运行直到stop()被调用。任何连接错误都只会导致重连，不会向外抛出。
        """
        if self._running:
            logger.warning("Feishu channel already running")
            return

        self._running = True

        while self._running:
            try:
                await self._connect_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Feishu connection error: {e}")
            finally:
                self._reset_connection()

            if not self._running:
                break

            delay = self._backoff.next_delay()
            logger.info(f"Reconnecting to Feishu in {delay:g} seconds...")
            await self._wait(delay)

    async def stop(self) -> None:
        """
        停止飞书渠道。

        取消心跳任务并关闭WebSocket连接。
        """
        self._running = False
        self._stop_heartbeat()
        if self._ws:
            await self._ws.close()
            self._ws = None
        self.state = ConnectionState.DISCONNECTED

    async def send(self, msg: OutboundMessage) -> None:
        """
        把回复或表情发送到飞书。

        错误只记录日志，不向外抛出。

        Args:
            msg: 要发送的出站消息
        """
        try:
            if msg.kind == "reaction":
                await self.api.add_reaction(msg.message_id, msg.content)
                return
            if await self.api.reply_message(msg.message_id, msg.content):
                logger.debug(f"Feishu reply sent to {msg.message_id}")
        except Exception as e:
            logger.error(f"Error sending Feishu reply to {msg.message_id}: {e}")

    async def _connect_once(self) -> None:
        """获取长连接地址，建立连接并处理帧直到连接关闭。"""
        self.state = ConnectionState.CONNECTING
        url = await self.api.get_ws_endpoint()
        logger.info("Obtained Feishu WebSocket URL")

        async with websockets.connect(url) as ws:
            self._ws = ws
            self.state = ConnectionState.CONNECTED
            self._backoff.reset()
            logger.info("Connected to Feishu WebSocket")
            self._start_heartbeat()

            async for raw in ws:
                await self._on_frame(raw)

        logger.warning("Feishu WebSocket closed")

    def _reset_connection(self) -> None:
        """连接结束后的清理：回到DISCONNECTED状态。"""
        self._stop_heartbeat()
        self._ws = None
        self.state = ConnectionState.DISCONNECTED

    async def _wait(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def _on_frame(self, raw: str | bytes) -> None:
        """
        处理一个来自飞书的帧。

        - pong：控制帧，忽略
        - im.message.receive_v1：构造InboundEvent并交给消息总线
        - 带event_id的帧：交接后立即发送ack，不等待路由结果

        Args:
            raw: 原始帧
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            logger.warning(f"Invalid JSON from Feishu: {str(raw)[:100]}")
            return

        if not isinstance(data, dict):
            return

        if data.get("type") == "pong":
            return

        header = data.get("header") or {}

        if header.get("event_type") == MESSAGE_RECEIVE_EVENT:
            event = InboundEvent.from_payload(header, data.get("event") or {})
            if event:
                try:
                    await self._handle_message(event)
                except Exception as e:
                    logger.error(f"Error handing off Feishu event {event.event_id}: {e}")

        event_id = header.get("event_id")
        if event_id:
            await self._ack(event_id)

    async def _ack(self, event_id: str) -> None:
        """确认事件，避免飞书重复投递。发送失败只记录日志。"""
        try:
            await self._send_frame({"type": "ack", "event_id": event_id})
        except Exception as e:
            logger.warning(f"Failed to ack Feishu event {event_id}: {e}")

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise FeishuConnectionError("Feishu WebSocket not connected")
        await ws.send(json.dumps(frame))

    def _start_heartbeat(self) -> None:
        """
        启动或重启心跳循环。

        按配置的间隔发送{"type": "ping"}，连接断开后自动结束。
        """
        self._stop_heartbeat()

        async def heartbeat_loop() -> None:
            while self._running and self.is_connected:
                await asyncio.sleep(self.config.heartbeat_interval_s)
                if not self.is_connected:
                    break
                try:
                    await self._send_frame({"type": "ping"})
                except Exception as e:
                    logger.warning(f"Feishu heartbeat failed: {e}")
                    break

        self._heartbeat_task = asyncio.create_task(heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
