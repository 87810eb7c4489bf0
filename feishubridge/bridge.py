"""桥接器装配：把各个组件连起来并管理它们的生命周期。

飞书用户 ←→ 飞书云端 ←→ 桥接器（本地） ←→ MoltBot Gateway
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from feishubridge.backend.connector import AgentBackend
from feishubridge.bus.queue import MessageBus
from feishubridge.channels.feishu import FeishuChannel
from feishubridge.config.schema import Config
from feishubridge.feishu.api import FeishuAPI
from feishubridge.feishu.auth import TenantTokenManager
from feishubridge.providers.fallback import DirectCallFallback
from feishubridge.relay.dedup import DedupStore
from feishubridge.relay.router import MessageRouter


class Bridge:
    """
    飞书 × 智能体后端桥接器。

    start()会一直运行（飞书长连接永不放弃重连），直到stop()被调用或任务被取消。
    """

    def __init__(self, config: Config, http: httpx.AsyncClient | None = None):
        self.config = config
        self.bus = MessageBus()
        self.http = http or httpx.AsyncClient(timeout=30.0)

        self.tokens = TenantTokenManager(
            app_id=config.feishu.app_id,
            app_secret=config.feishu.app_secret,
            http=self.http,
            api_base=config.feishu.api_base,
            refresh_margin=config.feishu.token_refresh_margin_s,
        )
        self.api = FeishuAPI(self.tokens, self.http, config.feishu.api_base)
        self.channel = FeishuChannel(config.feishu, self.bus, self.api)
        self.backend = AgentBackend(config.backend)
        self.fallback = DirectCallFallback.from_config(config.fallback)
        self.router = MessageRouter(
            bus=self.bus,
            backend=self.backend,
            fallback=self.fallback,
            dedup=DedupStore(config.relay.dedup_ttl_s),
            reaction_emoji=config.feishu.reaction_emoji,
        )

        self.bus.subscribe_outbound(self.channel.send)
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """
        启动桥接器。

        先尝试连接智能体后端（等待片刻），连不上则提示将使用直连模式；
        然后启动路由器，最后运行飞书长连接。
        """
        self._tasks.append(asyncio.create_task(self.backend.start()))

        if await self.backend.wait_connected(self.config.backend.connect_wait_s):
            logger.info(f"Agent backend ready at {self.config.backend.url}")
        else:
            logger.warning("Agent backend unavailable, messages will use direct completion until it connects")
            if not self.fallback.configured:
                logger.warning("ANTHROPIC_API_KEY not configured, make sure the agent backend is reachable")

        self._tasks.append(asyncio.create_task(self.router.run()))

        logger.info("Bridge started, waiting for messages...")
        await self.channel.start()

    async def stop(self) -> None:
        """停止所有组件并释放HTTP连接。"""
        logger.info("Stopping bridge...")
        self.router.stop()
        self.router.cancel_all()

        await self.channel.stop()
        await self.backend.stop()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        await self.http.aclose()

    def get_status(self) -> dict[str, Any]:
        """各组件的运行状态。"""
        return {
            "feishu": self.channel.state.value,
            "backend": self.backend.state.value,
            "fallback_configured": self.fallback.configured,
            "pending_requests": self.backend.pending_count,
            "in_flight_messages": self.router.in_flight,
            "dedup_entries": len(self.router.dedup),
        }
