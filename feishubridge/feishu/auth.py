"""飞书tenant_access_token管理。

token有效期通常为2小时。这里按需刷新：缓存的token在距离过期不足
refresh_margin秒时视为失效。多个协程同时发现失效时只会发起一次交换。
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from loguru import logger

from feishubridge.errors import AuthError

TOKEN_PATH = "/auth/v3/tenant_access_token/internal"


@dataclass(frozen=True)
class Token:
    """tenant_access_token及其真实过期时间（epoch秒）。"""
    value: str
    expires_at: float

    def is_fresh(self, now: float, margin: float) -> bool:
        """距离过期是否还超过margin秒。"""
        return now < self.expires_at - margin


class TenantTokenManager:
    """
    获取并缓存飞书tenant_access_token。

    get_token()是并发安全的：刷新过程中到达的调用者会等待同一次刷新的结果，
    不会重复请求凭证接口。
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        http: httpx.AsyncClient,
        api_base: str = "https://open.feishu.cn/open-apis",
        refresh_margin: float = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.api_base = api_base.rstrip("/")
        self.refresh_margin = refresh_margin
        self._http = http
        self._clock = clock
        self._token: Token | None = None
        self._refresh: asyncio.Task[Token] | None = None  # 进行中的刷新
        self.exchange_count = 0  # 实际发起的凭证交换次数

    async def get_token(self) -> Token:
        """
        返回一个可用的token，必要时刷新。

        同一时间只有一次刷新在进行：刷新期间到达的调用者等待同一个任务，
        共享它的结果或它抛出的AuthError。

        Returns:
            距离过期超过refresh_margin的token

        Raises:
            AuthError: 凭证交换失败
        """
        token = self._token
        if token and token.is_fresh(self._clock(), self.refresh_margin):
            return token

        # 检查与创建之间没有await，因此不需要锁
        if self._refresh is None:
            self._refresh = asyncio.create_task(self._refresh_token())
        return await asyncio.shield(self._refresh)

    async def _refresh_token(self) -> Token:
        try:
            self._token = await self._exchange()
            return self._token
        finally:
            self._refresh = None

    def invalidate(self) -> None:
        """丢弃缓存的token，下次调用get_token()会重新获取。"""
        self._token = None

    async def _exchange(self) -> Token:
        """向飞书凭证接口换取新的tenant_access_token。"""
        self.exchange_count += 1
        url = f"{self.api_base}{TOKEN_PATH}"
        try:
            resp = await self._http.post(url, json={
                "app_id": self.app_id,
                "app_secret": self.app_secret,
            })
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise AuthError(f"获取 token 失败: {e}") from e
        except ValueError as e:
            raise AuthError(f"获取 token 失败: 无效的响应 ({e})") from e

        if not isinstance(data, dict):
            raise AuthError("获取 token 失败: 响应不是 JSON 对象")
        if data.get("code") != 0:
            raise AuthError(f"获取 token 失败: {data.get('msg')}")

        value = data.get("tenant_access_token")
        if not value:
            raise AuthError("获取 token 失败: 响应中缺少 tenant_access_token")

        try:
            expire = int(data["expire"])
        except (KeyError, TypeError, ValueError) as e:
            raise AuthError("获取 token 失败: 响应中缺少有效的 expire") from e
        if expire <= self.refresh_margin:
            raise AuthError(f"获取 token 失败: 有效期 {expire}s 不长于刷新余量 {self.refresh_margin}s")

        logger.info(f"Obtained tenant_access_token (expires in {expire}s)")
        return Token(value=value, expires_at=self._clock() + expire)
