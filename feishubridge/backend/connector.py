"""与智能体后端（MoltBot Gateway）的WebSocket连接。

一条连接上复用多个并发请求：每个请求带唯一的requestId，后端的响应帧
通过requestId找回对应的等待者。

请求帧:  {"type": "message", "requestId", "agentId", "userId", "content"}
响应帧:  {"requestId", "type": "response" | "complete" | "error", "content" | "error"}
"""

import asyncio
import json
import secrets
import time
from dataclasses import dataclass
from typing import Any

import websockets
from loguru import logger

from feishubridge.config.schema import BackendConfig
from feishubridge.errors import BackendConnectionError, BackendError, BackendTimeoutError
from feishubridge.utils.reconnect import ConnectionState, FixedDelay
from feishubridge.utils.timers import Timer

TERMINAL_TYPES = ("response", "complete")


@dataclass
class PendingRequest:
    """
    一个等待后端响应的请求。

    resolve()/reject()只有第一次调用生效；两者都会取消超时定时器。
    """
    request_id: str
    future: asyncio.Future
    timer: Timer

    @property
    def deadline(self) -> float:
        return self.timer.deadline

    def resolve(self, content: Any) -> None:
        self.timer.cancel()
        if not self.future.done():
            self.future.set_result(content)

    def reject(self, error: Exception) -> None:
        self.timer.cancel()
        if not self.future.done():
            self.future.set_exception(error)


class AgentBackend:
    """
    智能体后端连接器。

    start()维持连接，断开后固定间隔（默认5秒）无限重连。
    send()发送一条用户消息并等待对应的响应，超时时间默认120秒。

    连接断开时不会主动拒绝未完成的请求，它们会自然超时。
    """

    def __init__(self, config: BackendConfig):
        self.config = config
        self.state = ConnectionState.DISCONNECTED
        self.dropped_frames = 0  # 无法对应到请求的帧数
        self._ws: Any = None
        self._running = False
        self._pending: dict[str, PendingRequest] = {}
        self._connected = asyncio.Event()
        self._delay = FixedDelay(config.reconnect_delay_s)

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def has_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    async def start(self) -> None:
        """
        连接到后端并保持连接。

        持续运行直到stop()被调用，连接错误只会导致重连。
        """
        if self._running:
            logger.warning("Agent backend connector already running")
            return

        self._running = True
        logger.info(f"Connecting to agent backend at {self.config.url}...")

        while self._running:
            try:
                self.state = ConnectionState.CONNECTING
                async with websockets.connect(self.config.url) as ws:
                    self._ws = ws
                    self.state = ConnectionState.CONNECTED
                    self._connected.set()
                    self._delay.reset()
                    logger.info("Connected to agent backend")

                    async for raw in ws:
                        self._on_frame(raw)

                logger.warning("Agent backend connection closed")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Agent backend connection error: {e}")
            finally:
                self._ws = None
                self.state = ConnectionState.DISCONNECTED
                self._connected.clear()

            if self._running:
                delay = self._delay.next_delay()
                logger.info(f"Reconnecting to agent backend in {delay:g} seconds...")
                await self._wait(delay)

    async def _wait(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def stop(self) -> None:
        """停止重连循环并关闭连接。未完成的请求仍按各自的定时器超时。"""
        self._running = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        self.state = ConnectionState.DISCONNECTED
        self._connected.clear()

    async def wait_connected(self, timeout: float) -> bool:
        """
        等待连接建立。

        Args:
            timeout: 最长等待秒数

        Returns:
            在超时前连接成功返回True
        """
        if self.is_connected:
            return True
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_connected

    async def send(self, text: str, user_id: str) -> str:
        """
        发送一条消息给智能体并等待回复。

        Args:
            text: 用户消息
            user_id: 飞书用户ID（会加上配置的前缀）

        Returns:
            智能体的回复文本

        Raises:
            BackendConnectionError: 未连接或写入失败
            BackendTimeoutError: 超时未收到响应
            BackendError: 后端返回error帧
        """
        ws = self._ws
        if ws is None or not self.is_connected:
            raise BackendConnectionError("Agent backend is not connected")

        request_id = self._new_request_id()
        future = asyncio.get_running_loop().create_future()
        timer = Timer(self.config.request_timeout_s, self._expire, request_id)
        self._pending[request_id] = PendingRequest(request_id, future, timer)

        payload = {
            "type": "message",
            "requestId": request_id,
            "agentId": self.config.agent_id,
            "userId": f"{self.config.user_prefix}{user_id}",
            "content": text,
        }

        try:
            await ws.send(json.dumps(payload, ensure_ascii=False))
        except Exception as e:
            self._reject(request_id, BackendConnectionError(f"Failed to send to agent backend: {e}"))

        try:
            content = await future
        finally:
            # 调用者被取消时清理，正常结束时条目已被移除
            entry = self._pending.pop(request_id, None)
            if entry:
                entry.timer.cancel()

        return "" if content is None else str(content)

    def _new_request_id(self) -> str:
        while True:
            request_id = f"req_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
            if request_id not in self._pending:
                return request_id

    def _on_frame(self, raw: str | bytes) -> None:
        """
        处理一个后端帧。

        找不到对应请求的帧（已超时、已取消或格式错误）会被静默丢弃。
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            self.dropped_frames += 1
            logger.debug(f"Invalid JSON from agent backend: {str(raw)[:100]}")
            return

        if not isinstance(data, dict):
            self.dropped_frames += 1
            return

        request_id = data.get("requestId")
        if not isinstance(request_id, str) or request_id not in self._pending:
            self.dropped_frames += 1
            logger.debug(f"Dropping uncorrelated backend frame: {request_id}")
            return

        frame_type = data.get("type")
        if frame_type in TERMINAL_TYPES:
            entry = self._pending.pop(request_id)
            entry.resolve(data.get("content"))
        elif frame_type == "error":
            self._reject(request_id, BackendError(str(data.get("error") or "unknown error")))

    def _reject(self, request_id: str, error: Exception) -> None:
        entry = self._pending.pop(request_id, None)
        if entry:
            entry.reject(error)

    def _expire(self, request_id: str) -> None:
        entry = self._pending.pop(request_id, None)
        if entry:
            logger.warning(f"Agent backend request {request_id} timed out")
            entry.reject(BackendTimeoutError("MoltBot 响应超时"))
