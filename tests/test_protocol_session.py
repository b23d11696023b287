import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from eventbot.chat.events import FOLLOW, ChatMessage, Follow
from eventbot.chat.session import ProtocolSession
from eventbot.chat.subscriptions import (
    SubscriptionSpec,
    bot_subscriptions,
    broadcaster_subscriptions,
)
from eventbot.errors.eventsub import (
    EventSubConnectionError,
    NoSessionError,
    SubscriptionCreateError,
)
from eventbot.utils.tasks import BackgroundTasks
from tests.fixtures.fakes import FakeWebSocket, notification_frame, welcome_frame


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_session(ws, api=None, **kwargs):
    api = api or MagicMock()
    if not isinstance(getattr(api, "request", None), AsyncMock):
        api.request = AsyncMock(return_value=({"data": [{"id": "sub-1"}]}, 202, {}))

    async def connector(url):
        return ws

    session = ProtocolSession(api, MagicMock(), name="test", connector=connector, **kwargs)
    return session, api


@pytest.mark.asyncio
async def test_connect_returns_before_handshake():
    ws = FakeWebSocket()
    session, _ = make_session(ws)
    await session.connect()
    assert session.is_running
    assert session.session_id is None

    ws.push(welcome_frame("abc"))
    await settle()
    assert session.session_id == "abc"
    await session.close()


@pytest.mark.asyncio
async def test_ensure_subscriptions_posts_in_order_after_welcome():
    ws = FakeWebSocket()
    session, api = make_session(ws)
    await session.connect()
    specs = bot_subscriptions("b1", "bot1", "mod1")

    pending = asyncio.create_task(session.ensure_subscriptions(specs))
    await settle()
    api.request.assert_not_called()

    ws.push(welcome_frame("sess-9"))
    created = await asyncio.wait_for(pending, 1)

    assert created == ["sub-1", "sub-1"]
    bodies = [call.kwargs["json_body"] for call in api.request.call_args_list]
    assert [b["type"] for b in bodies] == ["channel.chat.message", "channel.follow"]
    assert bodies[1]["version"] == "2"
    assert bodies[1]["condition"] == {"broadcaster_user_id": "b1", "moderator_user_id": "mod1"}
    assert bodies[0]["transport"] == {"method": "websocket", "session_id": "sess-9"}
    assert api.request.call_args_list[0].args == ("POST", "eventsub/subscriptions")
    await session.close()


@pytest.mark.asyncio
async def test_ensure_subscriptions_times_out_without_welcome():
    ws = FakeWebSocket()
    session, api = make_session(ws, welcome_timeout=0.05)
    await session.connect()
    with pytest.raises(NoSessionError):
        await session.ensure_subscriptions(broadcaster_subscriptions("b1"))
    api.request.assert_not_called()
    await session.close()


@pytest.mark.asyncio
async def test_failed_subscription_aborts_remaining(caplog):
    ws = FakeWebSocket()
    api = MagicMock()
    api.request = AsyncMock(return_value=({"error": "Forbidden", "message": "missing scope"}, 403, {}))
    session, _ = make_session(ws, api=api)
    await session.connect()
    ws.push(welcome_frame())
    await settle()

    with caplog.at_level(logging.ERROR), pytest.raises(SubscriptionCreateError) as exc_info:
        await session.ensure_subscriptions(broadcaster_subscriptions("b1"))

    assert exc_info.value.status == 403
    assert "missing scope" in exc_info.value.body
    assert api.request.await_count == 1
    assert "403" in caplog.text
    # The session itself survives
    assert session.is_running
    await session.close()


@pytest.mark.asyncio
async def test_callbacks_run_in_order_and_survive_failures():
    ws = FakeWebSocket()
    tasks = BackgroundTasks("test")
    session, _ = make_session(ws, tasks=tasks)
    calls = []
    done = asyncio.Event()

    def failing(ev):
        calls.append("failing")
        raise RuntimeError("boom")

    def recorder(ev):
        calls.append(("recorder", ev.user_name))

    async def async_handler(ev):
        calls.append("async")
        done.set()

    session.on(Follow, failing)
    session.on(Follow, recorder)
    session.on(Follow, async_handler)
    session.on(ChatMessage, lambda ev: calls.append("chat"))
    await session.connect()

    ws.push(notification_frame(FOLLOW, {"user_id": "42", "user_name": "Ada"}))
    await asyncio.wait_for(done.wait(), 1)

    assert calls == ["failing", ("recorder", "Ada"), "async"]
    await session.close()


@pytest.mark.asyncio
async def test_malformed_frames_are_skipped():
    ws = FakeWebSocket()
    session, _ = make_session(ws)
    seen = []
    session.on(Follow, seen.append)
    await session.connect()

    ws.push("{not json")
    ws.push(b"\xff\xfe")
    ws.push("[1, 2, 3]")
    ws.push({"metadata": {"message_type": "notification"}, "payload": "nope"})
    ws.push({"metadata": {"message_type": "session_welcome"}, "payload": {"session": {}}})
    ws.push({"metadata": {"message_type": "session_keepalive"}, "payload": {}})
    ws.push({"metadata": {"message_type": "revocation"}, "payload": {}})
    ws.push(notification_frame(FOLLOW, {"user_id": "1", "user_name": "Ok"}))
    await settle(30)

    assert [ev.user_name for ev in seen] == ["Ok"]
    assert session.is_running
    assert session.session_id is None
    await session.close()


@pytest.mark.asyncio
async def test_transport_end_invalidates_session_id():
    ws = FakeWebSocket()
    session, _ = make_session(ws)
    await session.connect()
    ws.push(welcome_frame("gone-soon"))
    await settle()
    assert session.is_ready

    ws.end()
    await settle()
    assert not session.is_running
    assert session.session_id is None
    await session.close()


@pytest.mark.asyncio
async def test_second_welcome_overwrites_session_id():
    ws = FakeWebSocket()
    session, _ = make_session(ws)
    await session.connect()

    ws.push(welcome_frame("a"))
    ws.push(welcome_frame("b"))
    await settle()

    assert session.session_id == "b"
    assert session.is_ready
    await session.close()


class _ResettingWebSocket(FakeWebSocket):
    async def __anext__(self):
        frame = await super().__anext__()
        if frame == "reset":
            raise OSError("connection reset")
        return frame


@pytest.mark.asyncio
async def test_reconnect_closes_transport_left_by_failed_loop():
    first, second = _ResettingWebSocket(), FakeWebSocket()
    sockets = iter([first, second])

    async def connector(url):
        return next(sockets)

    session = ProtocolSession(MagicMock(), MagicMock(), name="test", connector=connector)
    await session.connect()
    first.push("reset")
    await settle()
    assert not session.is_running
    assert first.close_calls == 0

    await session.connect()
    assert first.close_calls == 1

    second.push(welcome_frame("fresh"))
    await settle()
    assert session.session_id == "fresh"

    await session.close()
    assert second.close_calls == 1
    assert first.close_calls == 1


@pytest.mark.asyncio
async def test_close_cancels_loop_and_closes_transport():
    ws = FakeWebSocket()
    session, _ = make_session(ws)
    await session.connect()
    ws.push(welcome_frame())
    await settle()

    await session.close()
    assert ws.closed
    assert not session.is_running
    assert session.session_id is None

    # Second close is a no-op
    await session.close()
    assert ws.close_calls == 1


@pytest.mark.asyncio
async def test_connect_failure_is_wrapped():
    async def connector(url):
        raise OSError("unreachable")

    session = ProtocolSession(MagicMock(), MagicMock(), connector=connector)
    with pytest.raises(EventSubConnectionError):
        await session.connect()
    assert not session.is_running


def test_subscription_sets_per_identity():
    bot = bot_subscriptions("b1", "bot1")
    assert bot[0] == SubscriptionSpec(
        "channel.chat.message", "1", {"broadcaster_user_id": "b1", "user_id": "bot1"}
    )
    assert bot[1].condition["moderator_user_id"] == "b1"

    broadcaster = broadcaster_subscriptions("b1")
    assert [s.type for s in broadcaster] == [
        "channel.subscribe",
        "channel.subscription.message",
        "channel.subscription.gift",
        "channel.channel_points_custom_reward_redemption.add",
        "channel.cheer",
        "channel.raid",
    ]
    assert broadcaster[-1].condition == {"to_broadcaster_user_id": "b1"}
