from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from eventbot.api.protocols import ChannelInfo, GameInfo, Quote, StreamInfo, UserIdentity
from eventbot.commands.handlers import (
    CommandContext,
    CommandHandlers,
    calendar_age,
    sanitize,
    static_handler,
)
from eventbot.config.model import CommandDef, ModToolsConfig, SanitizationConfig
from tests.fixtures.fakes import FakeClock, make_chat

NOW = datetime(2024, 12, 20, 18, 30, 0, tzinfo=UTC)


def ctx_for(chat_api, text="", **flags):
    return CommandContext(
        api=chat_api, broadcaster_id="b1", bot_user_id="bot1", message=make_chat(text, **flags)
    )


def handlers_with(**kwargs):
    kwargs.setdefault("utcnow", lambda: NOW)
    return CommandHandlers(**kwargs)


def cmd(name, **data):
    return CommandDef(name=name, type="dynamic", data=data)


@pytest.mark.asyncio
async def test_static_handler_uses_data_text():
    assert await static_handler(None, CommandDef(name="a", data={"text": "hi"}), "") == "hi"
    assert await static_handler(None, CommandDef(name="a", data={"text": "  "}), "") is None
    assert await static_handler(None, CommandDef(name="a"), "") is None


@pytest.mark.asyncio
async def test_uptime_live_and_offline(chat_api):
    handlers = handlers_with()
    assert await handlers.uptime(ctx_for(chat_api), cmd("uptime"), "") == "Stream offline"

    chat_api.stream = StreamInfo(id="s", user_id="b1", started_at=NOW - timedelta(hours=26, seconds=65))
    assert await handlers.uptime(ctx_for(chat_api), cmd("uptime"), "") == "Uptime: 26:01:05"


@pytest.mark.asyncio
async def test_shoutout_posts_announcement_and_no_chat_text(chat_api):
    chat_api.users["friend"] = UserIdentity(id="77", login="friend", display_name="Friend")
    chat_api.channels["77"] = ChannelInfo(broadcaster_id="77", game_name="Celeste")
    chat_api.shoutout_error = RuntimeError("shoutout cooldown")
    handlers = handlers_with()

    result = await handlers.shoutout(ctx_for(chat_api, moderator=True), cmd("so"), "@Friend")

    assert result is None
    assert chat_api.sent == []
    [announcement] = chat_api.announcements
    assert announcement["color"] == "green"
    assert announcement["moderator_id"] == "bot1"
    assert "Friend" in announcement["text"] and "twitch.tv/friend" in announcement["text"]


@pytest.mark.asyncio
async def test_shoutout_uses_live_template_and_requires_mod(chat_api):
    chat_api.users["friend"] = UserIdentity(id="77", login="friend", display_name="Friend")
    chat_api.streams["77"] = StreamInfo(id="s77", user_id="77")
    modtools = ModToolsConfig.model_validate(
        {"shoutout": {"live_template": "LIVE {user.display} {game}", "announcement_color": "blue"}}
    )
    handlers = handlers_with(modtools=lambda: modtools)

    await handlers.shoutout(ctx_for(chat_api), cmd("so"), "friend")
    assert chat_api.announcements == []

    await handlers.shoutout(ctx_for(chat_api, broadcaster=True), cmd("so"), "friend")
    assert chat_api.shoutouts == [("b1", "77", "bot1")]
    assert chat_api.announcements == [
        {"text": "LIVE Friend Just Chatting", "color": "blue", "moderator_id": "bot1"}
    ]


@pytest.mark.asyncio
async def test_softshout_templates_from_data(chat_api):
    chat_api.users["pal"] = UserIdentity(id="5", login="pal", display_name="Pal")
    handlers = handlers_with()
    command = cmd(
        "sso",
        announce_offline="{name} was playing {game} at {user.name}",
        announce_color="purple",
    )

    assert await handlers.softshout(ctx_for(chat_api), command, "@pal") is None
    assert chat_api.announcements == [
        {"text": "Pal was playing something great at pal", "color": "purple", "moderator_id": "bot1"}
    ]


@pytest.mark.asyncio
async def test_softshout_and_shoutout_silent_without_target(chat_api):
    handlers = handlers_with()
    assert await handlers.softshout(ctx_for(chat_api), cmd("sso"), "") is None
    assert await handlers.shoutout(ctx_for(chat_api, moderator=True), cmd("so"), "@ghost") is None
    assert chat_api.announcements == []


@pytest.mark.asyncio
async def test_title_get_and_set_with_cooldown(chat_api):
    chat_api.channels["b1"] = ChannelInfo(broadcaster_id="b1", title="Old title")
    clock = FakeClock()
    handlers = handlers_with(clock=clock)

    assert await handlers.title(ctx_for(chat_api), cmd("title"), "") == "Current title: Old title"
    assert await handlers.title(ctx_for(chat_api), cmd("title"), "new") is None

    mod = ctx_for(chat_api, moderator=True)
    assert await handlers.title(mod, cmd("title"), "  New \x07 shiny   title ") == (
        "Title changed to --> New shiny title"
    )
    assert await handlers.title(mod, cmd("title"), "again") is None
    clock.advance(5)
    assert await handlers.title(mod, cmd("title"), "again") == "Title changed to --> again"
    assert chat_api.title_updates == ["New shiny title", "again"]


@pytest.mark.asyncio
async def test_title_update_failure_is_silent(chat_api):
    chat_api.update_ok = False
    handlers = handlers_with()
    assert await handlers.title(ctx_for(chat_api, broadcaster=True), cmd("title"), "x") is None


@pytest.mark.asyncio
async def test_game_by_name_and_by_id(chat_api):
    chat_api.games["celeste"] = GameInfo(id="504461", name="Celeste")
    clock = FakeClock()
    handlers = handlers_with(clock=clock)
    mod = ctx_for(chat_api, moderator=True)

    assert await handlers.game(ctx_for(chat_api), cmd("game"), "") == "Current category: (none)"
    assert await handlers.game(mod, cmd("game"), "Celeste") == "Game changed to --> Celeste"
    clock.advance(10)
    assert await handlers.game(mod, cmd("game"), "12345") == "Game changed to --> 12345"
    clock.advance(10)
    assert await handlers.game(mod, cmd("game"), "Unknown Game") is None
    assert chat_api.game_updates == ["504461", "12345"]


@pytest.mark.asyncio
async def test_followage_self_and_target(chat_api):
    chat_api.follows["u1"] = datetime(2023, 10, 5, tzinfo=UTC)
    chat_api.users["pal"] = UserIdentity(id="5", login="pal", display_name="Pal")
    handlers = handlers_with()

    assert await handlers.followage(ctx_for(chat_api), cmd("followage"), "pal") == (
        "📏 You've been following for 1y 2m 15d (since 2023-10-05)."
    )
    mod = ctx_for(chat_api, moderator=True)
    assert await handlers.followage(mod, cmd("followage"), "@pal") == "😢 Pal is not following."
    assert await handlers.followage(mod, cmd("followage"), "nobody") == "User 'nobody' not found."


@pytest.mark.asyncio
async def test_time_and_xmas_use_timezone(chat_api):
    handlers = handlers_with(timezone="Europe/London")
    assert await handlers.current_time(ctx_for(chat_api), cmd("time"), "") == (
        "Current time (Europe/London): 2024-12-20 18:30:00"
    )
    assert await handlers.xmas(ctx_for(chat_api), cmd("xmas"), "") == (
        "🎄 There are 5 days to Christmas! 🎅"
    )

    on_the_day = handlers_with(utcnow=lambda: datetime(2024, 12, 25, 9, tzinfo=UTC))
    assert await on_the_day.xmas(ctx_for(chat_api), cmd("xmas"), "") == "🎄 It's Christmas today! 🎁"

    after = handlers_with(utcnow=lambda: datetime(2024, 12, 26, 9, tzinfo=UTC))
    assert "364 days" in await after.xmas(ctx_for(chat_api), cmd("xmas"), "")


@pytest.mark.asyncio
async def test_clip_offline_and_live(chat_api):
    handlers = handlers_with()
    assert await handlers.clip(ctx_for(chat_api), cmd("clip"), "") == "❌ Can't clip when offline"
    chat_api.stream = StreamInfo(id="s", user_id="b1")
    assert await handlers.clip(ctx_for(chat_api), cmd("clip"), "") == (
        "📽️ Here's your clip! → https://clips.twitch.tv/ClipId123"
    )
    chat_api.clip_id = None
    assert await handlers.clip(ctx_for(chat_api), cmd("clip"), "") is None


@pytest.mark.asyncio
async def test_quote_commands(chat_api):
    store = AsyncMock()
    store.get_random.return_value = Quote(id=3, text="hello")
    store.get_by_id.return_value = None
    store.search.return_value = Quote(id=4, text="found it")
    store.add.return_value = 9
    store.delete.return_value = True
    handlers = handlers_with(store=store)
    ctx = ctx_for(chat_api)

    assert await handlers.quote(ctx, cmd("quote"), "") == "Quote #3: hello"
    assert await handlers.quote(ctx, cmd("quote"), "12") == "No quote with id 12."
    assert await handlers.quote(ctx, cmd("quote"), "found") == "Quote #4: found it"
    assert await handlers.addquote(ctx, cmd("addquote"), " ") == "Please provide a quote text."
    assert await handlers.addquote(ctx, cmd("addquote"), "wise words") == "Quote #9 added."
    store.add.assert_awaited_once_with("wise words", "u1", "viewer")
    assert await handlers.delquote(ctx, cmd("delquote"), "abc") == "Usage: !delquote <id>"
    assert await handlers.delquote(ctx, cmd("delquote"), "9") == "Quote #9 deleted."


@pytest.mark.asyncio
async def test_quote_commands_silent_without_store(chat_api):
    handlers = handlers_with()
    ctx = ctx_for(chat_api)
    assert await handlers.quote(ctx, cmd("quote"), "") is None
    assert await handlers.addquote(ctx, cmd("addquote"), "x") is None
    assert await handlers.delquote(ctx, cmd("delquote"), "1") is None


def test_resolve_by_name_alias_and_data_handler():
    handlers = CommandHandlers()
    assert handlers.resolve(cmd("uptime")) == handlers.uptime
    assert handlers.resolve(cmd("SO")) == handlers.shoutout
    assert handlers.resolve(cmd("sso")) == handlers.softshout
    assert handlers.resolve(cmd("howlong", handler="followage")) == handlers.followage
    assert handlers.resolve(cmd("nothing")) is None


def test_calendar_age():
    assert calendar_age(date(2024, 1, 31), date(2024, 1, 31)) == "0d"
    assert calendar_age(date(2024, 1, 31), date(2024, 2, 29)) == "1m"
    assert calendar_age(date(2022, 3, 1), date(2024, 3, 1)) == "2y"
    assert calendar_age(date(2023, 10, 5), date(2024, 12, 20)) == "1y 2m 15d"


def test_sanitize_rules():
    rules = SanitizationConfig()
    assert sanitize("  a \x00b\n\n c  ", rules) == "a b c"
    keep = SanitizationConfig(collapse_whitespace=False, strip_control_chars=False, trim=False)
    assert sanitize(" a\tb ", keep) == " a\tb "
