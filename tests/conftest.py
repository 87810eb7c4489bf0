"""Shared fakes for the relay tests. Nothing here touches the network."""

import asyncio
import json
from typing import Any, Callable

import pytest

from feishubridge.bus.events import InboundEvent, Mention, OutboundMessage
from feishubridge.bus.queue import MessageBus
from feishubridge.config.loader import ENV_ALIASES


class FakeWebSocket:
    """Records outbound frames; optionally fails or answers each send."""

    def __init__(self, fail: bool = False, responder: Callable[[dict], None] | None = None):
        self.fail = fail
        self.responder = responder
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        if self.fail:
            raise ConnectionError("socket is closed")
        self.sent.append(message)
        if self.responder:
            self.responder(json.loads(message))

    async def close(self) -> None:
        self.closed = True

    @property
    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent]


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def record_outbound(bus: MessageBus) -> list[OutboundMessage]:
    """Subscribes a recorder to `bus` and returns the list it appends to."""
    messages: list[OutboundMessage] = []

    async def record(msg: OutboundMessage) -> None:
        messages.append(msg)

    bus.subscribe_outbound(record)
    return messages


def make_event(
    text: str = "hello",
    message_id: str = "om_1",
    message_type: str = "text",
    sender_id: str = "u_1",
    mentions: list[Mention] | None = None,
    raw_content: str | None = None,
) -> InboundEvent:
    return InboundEvent(
        event_id=f"ev_{message_id}",
        event_type="im.message.receive_v1",
        message_id=message_id,
        message_type=message_type,
        raw_content=raw_content if raw_content is not None else json.dumps({"text": text}),
        sender_id=sender_id,
        chat_id="oc_1",
        mentions=mentions or [],
    )


def feishu_frame(
    text: str = "hello",
    message_id: str = "om_1",
    event_id: str = "ev_1",
    user_id: str = "u_1",
    event_type: str = "im.message.receive_v1",
) -> str:
    return json.dumps({
        "header": {"event_type": event_type, "event_id": event_id},
        "event": {
            "sender": {"sender_id": {"user_id": user_id, "open_id": "ou_1"}},
            "message": {
                "message_id": message_id,
                "chat_id": "oc_1",
                "message_type": "text",
                "content": json.dumps({"text": text}),
                "mentions": [{"key": "@_user_1", "name": "bot", "id": {"open_id": "ou_bot"}}],
            },
        },
    })


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Remove the documented environment variables and point the secret file nowhere."""
    for name in ENV_ALIASES:
        monkeypatch.delenv(name, raising=False)
    for name in ("FEISHUBRIDGE_BACKEND__URL", "FEISHUBRIDGE_FEISHU__APP_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FEISHU_APP_SECRET_PATH", str(tmp_path / "no-such-secret"))
    return monkeypatch
