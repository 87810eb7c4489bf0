import asyncio
import json

import pytest

from conftest import FakeWebSocket, feishu_frame
from feishubridge.bus.events import OutboundMessage
from feishubridge.bus.queue import MessageBus
from feishubridge.channels.feishu import FeishuChannel
from feishubridge.config.schema import FeishuConfig
from feishubridge.errors import FeishuConnectionError
from feishubridge.utils.reconnect import ConnectionState


class FakeAPI:
    def __init__(self, endpoint_error: Exception | None = None, reply_error: Exception | None = None):
        self.endpoint_error = endpoint_error
        self.reply_error = reply_error
        self.endpoint_calls = 0
        self.replies: list[tuple[str, str]] = []
        self.reactions: list[tuple[str, str]] = []

    async def get_ws_endpoint(self) -> str:
        self.endpoint_calls += 1
        if self.endpoint_error:
            raise self.endpoint_error
        return "wss://example.invalid/ws"

    async def reply_message(self, message_id: str, text: str) -> bool:
        if self.reply_error:
            raise self.reply_error
        self.replies.append((message_id, text))
        return True

    async def add_reaction(self, message_id: str, emoji: str = "PROCESSING") -> bool:
        self.reactions.append((message_id, emoji))
        return True


def connected_channel(config: FeishuConfig | None = None, ws: FakeWebSocket | None = None):
    bus = MessageBus()
    api = FakeAPI()
    channel = FeishuChannel(config or FeishuConfig(), bus, api)
    channel._ws = ws or FakeWebSocket()
    channel.state = ConnectionState.CONNECTED
    return channel, bus, api


class TestFrameHandling:

    @pytest.mark.asyncio
    async def test_message_event_is_published_and_acked(self):
        channel, bus, _ = connected_channel()

        await channel._on_frame(feishu_frame(text="@_user_1 hi", message_id="om_9", event_id="ev_9"))

        event = bus.inbound.get_nowait()
        assert event.message_id == "om_9"
        assert event.message_type == "text"
        assert event.sender_id == "u_1"
        assert event.chat_id == "oc_1"
        assert [m.key for m in event.mentions] == ["@_user_1"]
        assert json.loads(event.raw_content) == {"text": "@_user_1 hi"}
        assert channel._ws.frames == [{"type": "ack", "event_id": "ev_9"}]

    @pytest.mark.asyncio
    async def test_ack_does_not_wait_for_routing(self):
        channel, bus, _ = connected_channel()

        # Nobody consumes the inbound queue, the ack still goes out.
        await channel._on_frame(feishu_frame(event_id="ev_1"))

        assert bus.inbound_size == 1
        assert channel._ws.frames == [{"type": "ack", "event_id": "ev_1"}]

    @pytest.mark.asyncio
    async def test_pong_is_ignored(self):
        channel, bus, _ = connected_channel()

        await channel._on_frame(json.dumps({"type": "pong"}))

        assert bus.inbound_size == 0
        assert channel._ws.sent == []

    @pytest.mark.asyncio
    async def test_other_events_are_acked_only(self):
        channel, bus, _ = connected_channel()

        await channel._on_frame(feishu_frame(event_type="im.chat.member.bot.added_v1", event_id="ev_2"))

        assert bus.inbound_size == 0
        assert channel._ws.frames == [{"type": "ack", "event_id": "ev_2"}]

    @pytest.mark.asyncio
    async def test_invalid_frames_are_dropped(self):
        channel, bus, _ = connected_channel()

        await channel._on_frame("not json{")
        await channel._on_frame(json.dumps([1, 2, 3]))

        assert bus.inbound_size == 0
        assert channel._ws.sent == []

    @pytest.mark.asyncio
    async def test_denied_sender_is_acked_but_not_routed(self):
        channel, bus, _ = connected_channel(FeishuConfig(allow_from=["u_allowed"]))

        await channel._on_frame(feishu_frame(user_id="u_other", event_id="ev_3"))

        assert bus.inbound_size == 0
        assert channel._ws.frames == [{"type": "ack", "event_id": "ev_3"}]

    @pytest.mark.asyncio
    async def test_ack_failure_is_not_raised(self):
        channel, bus, _ = connected_channel(ws=FakeWebSocket(fail=True))

        await channel._on_frame(feishu_frame())

        assert bus.inbound_size == 1


class TestSend:

    @pytest.mark.asyncio
    async def test_text_and_reaction(self):
        channel, _, api = connected_channel()

        await channel.send(OutboundMessage(message_id="om_1", content="PROCESSING", kind="reaction"))
        await channel.send(OutboundMessage(message_id="om_1", content="hello"))

        assert api.reactions == [("om_1", "PROCESSING")]
        assert api.replies == [("om_1", "hello")]

    @pytest.mark.asyncio
    async def test_reply_errors_are_logged_not_raised(self):
        bus = MessageBus()
        api = FakeAPI(reply_error=RuntimeError("token fetch failed"))
        channel = FeishuChannel(FeishuConfig(), bus, api)

        await channel.send(OutboundMessage(message_id="om_1", content="hello"))

        assert api.replies == []


class TestConnectionLoop:

    @pytest.mark.asyncio
    async def test_reconnect_backoff_sequence(self):
        api = FakeAPI(endpoint_error=FeishuConnectionError("endpoint unavailable"))
        channel = FeishuChannel(FeishuConfig(), MessageBus(), api)
        delays: list[float] = []

        async def record(delay: float) -> None:
            delays.append(delay)
            assert channel.state == ConnectionState.DISCONNECTED
            if len(delays) == 9:
                channel._running = False

        channel._wait = record
        await asyncio.wait_for(channel.start(), timeout=1.0)

        assert delays == [1, 2, 4, 8, 16, 32, 60, 60, 60]
        assert api.endpoint_calls == 9

    @pytest.mark.asyncio
    async def test_start_twice_is_refused(self):
        channel = FeishuChannel(FeishuConfig(), MessageBus(), FakeAPI())
        channel._running = True

        await asyncio.wait_for(channel.start(), timeout=0.5)

        assert channel.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_heartbeat_sends_pings_while_connected(self):
        channel, _, _ = connected_channel(FeishuConfig(heartbeat_interval_s=0.01))
        channel._running = True

        channel._start_heartbeat()
        await asyncio.sleep(0.06)
        channel.state = ConnectionState.DISCONNECTED
        await asyncio.sleep(0.02)
        channel._stop_heartbeat()

        pings = [f for f in channel._ws.frames if f == {"type": "ping"}]
        assert len(pings) >= 2

    @pytest.mark.asyncio
    async def test_stop_closes_socket(self):
        ws = FakeWebSocket()
        channel, _, _ = connected_channel(ws=ws)
        channel._running = True

        await channel.stop()

        assert ws.closed
        assert not channel.is_running
        assert channel.state == ConnectionState.DISCONNECTED
