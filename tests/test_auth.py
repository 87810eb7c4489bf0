import asyncio

import httpx
import pytest

from feishubridge.errors import AuthError
from feishubridge.feishu.auth import TenantTokenManager, Token


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def token_client(responses: list, delay: float = 0.0) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    """AsyncClient whose token endpoint answers from `responses` in order."""
    requests: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if delay:
            await asyncio.sleep(delay)
        body = responses[min(len(requests), len(responses)) - 1]
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def ok(value: str = "t-1", expire: int = 7200) -> dict:
    return {"code": 0, "msg": "ok", "tenant_access_token": value, "expire": expire}


class TestToken:

    def test_fresh_until_margin(self):
        token = Token(value="t", expires_at=1000)
        assert token.is_fresh(now=699, margin=300)
        assert not token.is_fresh(now=700, margin=300)


class TestTenantTokenManager:

    @pytest.mark.asyncio
    async def test_exchange_and_cache(self):
        http, requests = token_client([ok("t-1")])
        manager = TenantTokenManager("cli_a", "secret", http, clock=FakeClock())

        first = await manager.get_token()
        second = await manager.get_token()

        assert first.value == "t-1"
        assert second is first
        assert len(requests) == 1
        assert requests[0].url.path.endswith("/auth/v3/tenant_access_token/internal")
        await http.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_exchange(self):
        http, requests = token_client([ok("t-1")], delay=0.02)
        manager = TenantTokenManager("cli_a", "secret", http, clock=FakeClock())

        tokens = await asyncio.gather(*(manager.get_token() for _ in range(20)))

        assert {t.value for t in tokens} == {"t-1"}
        assert len(requests) == 1
        assert manager.exchange_count == 1
        await http.aclose()

    @pytest.mark.asyncio
    async def test_refreshes_inside_safety_margin(self):
        clock = FakeClock(now=0)
        http, requests = token_client([ok("t-1", expire=7200), ok("t-2", expire=7200)])
        manager = TenantTokenManager("cli_a", "secret", http, refresh_margin=300, clock=clock)

        assert (await manager.get_token()).value == "t-1"

        clock.now = 6899
        assert (await manager.get_token()).value == "t-1"

        clock.now = 6900
        assert (await manager.get_token()).value == "t-2"
        assert len(requests) == 2
        await http.aclose()

    @pytest.mark.asyncio
    async def test_error_code_raises_auth_error_and_next_call_retries(self):
        http, requests = token_client([{"code": 10003, "msg": "invalid app_secret"}, ok("t-2")])
        manager = TenantTokenManager("cli_a", "bad", http, clock=FakeClock())

        with pytest.raises(AuthError, match="invalid app_secret"):
            await manager.get_token()

        assert (await manager.get_token()).value == "t-2"
        assert len(requests) == 2
        await http.aclose()

    @pytest.mark.asyncio
    async def test_http_error_raises_auth_error(self):
        http, _ = token_client([httpx.Response(500, text="boom")])
        manager = TenantTokenManager("cli_a", "secret", http, clock=FakeClock())

        with pytest.raises(AuthError):
            await manager.get_token()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_exchange(self):
        http, requests = token_client([ok("t-1"), ok("t-2")])
        manager = TenantTokenManager("cli_a", "secret", http, clock=FakeClock())

        await manager.get_token()
        manager.invalidate()

        assert (await manager.get_token()).value == "t-2"
        assert len(requests) == 2
        await http.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_a_failed_exchange(self):
        http, requests = token_client([{"code": 10003, "msg": "invalid app_secret"}], delay=0.02)
        manager = TenantTokenManager("cli_a", "bad", http, clock=FakeClock())

        results = await asyncio.gather(*(manager.get_token() for _ in range(10)), return_exceptions=True)

        assert len(requests) == 1
        assert all(isinstance(r, AuthError) for r in results)

        # the failure is not cached, the next caller retries
        with pytest.raises(AuthError):
            await manager.get_token()
        assert len(requests) == 2
        await http.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expire", [None, "soon", 300, 60])
    async def test_unusable_expire_raises_auth_error(self, expire):
        body = {"code": 0, "tenant_access_token": "t-1", "expire": expire}
        http, _ = token_client([body])
        manager = TenantTokenManager("cli_a", "secret", http, refresh_margin=300, clock=FakeClock())

        with pytest.raises(AuthError, match="expire|有效期"):
            await manager.get_token()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_missing_expire_raises_auth_error(self):
        http, _ = token_client([{"code": 0, "tenant_access_token": "t-1"}])
        manager = TenantTokenManager("cli_a", "secret", http, clock=FakeClock())

        with pytest.raises(AuthError):
            await manager.get_token()
        await http.aclose()
