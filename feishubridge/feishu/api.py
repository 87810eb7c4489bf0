"""飞书开放平台REST接口。

只封装桥接器用到的三个接口：获取长连接地址、回复消息、添加表情回应。
所有请求都带上tenant_access_token作为Bearer凭证。
"""

import json
from typing import Any

import httpx
from loguru import logger

from feishubridge.errors import FeishuConnectionError
from feishubridge.feishu.auth import TenantTokenManager

# tenant_access_token无效或已过期
INVALID_TOKEN_CODES = (99991661, 99991663)


class FeishuAPI:
    """飞书REST客户端。"""

    def __init__(self, tokens: TenantTokenManager, http: httpx.AsyncClient, api_base: str):
        self.tokens = tokens
        self.api_base = api_base.rstrip("/")
        self._http = http

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        发送带鉴权的POST请求并返回响应JSON。

        Args:
            path: 以"/"开头的接口路径
            payload: 请求体

        Returns:
            响应JSON

        Raises:
            AuthError: token获取失败
            httpx.HTTPError: 网络错误
            FeishuConnectionError: 响应不是JSON对象
        """
        token = await self.tokens.get_token()
        resp = await self._http.post(
            f"{self.api_base}{path}",
            headers={"Authorization": f"Bearer {token.value}"},
            json=payload,
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise FeishuConnectionError(f"飞书接口 {path} 返回了非 JSON 响应 (HTTP {resp.status_code})") from e
        if not isinstance(data, dict):
            raise FeishuConnectionError(f"飞书接口 {path} 返回了意外的响应 (HTTP {resp.status_code})")
        if data.get("code") in INVALID_TOKEN_CODES:
            self.tokens.invalidate()
        return data

    async def get_ws_endpoint(self) -> str:
        """
        获取长连接的WebSocket地址。

        Returns:
            WebSocket URL

        Raises:
            FeishuConnectionError: 接口返回错误或响应中没有URL
        """
        data = await self._post("/callback/ws/endpoint", {})
        if data.get("code") != 0:
            raise FeishuConnectionError(f"获取 WebSocket URL 失败: {data.get('msg')}")
        url = (data.get("data") or {}).get("URL")
        if not url:
            raise FeishuConnectionError("获取 WebSocket URL 失败: 响应中没有 URL")
        return url

    async def reply_message(self, message_id: str, text: str) -> bool:
        """
        以文本消息回复指定消息。

        Args:
            message_id: 被回复的消息ID
            text: 回复内容

        Returns:
            回复成功返回True，飞书返回错误码时返回False
        """
        data = await self._post(f"/im/v1/messages/{message_id}/reply", {
            "content": json.dumps({"text": text}, ensure_ascii=False),
            "msg_type": "text",
        })
        if data.get("code") != 0:
            logger.error(f"Feishu reply to {message_id} failed: {data.get('msg')}")
            return False
        return True

    async def add_reaction(self, message_id: str, emoji: str = "PROCESSING") -> bool:
        """
        给消息添加表情回应。尽力而为，任何错误都被忽略。

        Args:
            message_id: 目标消息ID
            emoji: 表情类型

        Returns:
            添加成功返回True，否则返回False
        """
        try:
            data = await self._post(f"/im/v1/messages/{message_id}/reactions", {
                "reaction_type": {"emoji_type": emoji},
            })
        except Exception as e:
            logger.debug(f"Feishu reaction on {message_id} failed: {e}")
            return False
        return data.get("code") == 0
