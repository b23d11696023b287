import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from eventbot.chat.events import ChatMessage, Cheer, Follow, Raid
from eventbot.config.model import BotSettings
from eventbot.errors import NoSessionError
from eventbot.main import EventBot, health_check
from tests.fixtures.fakes import make_chat

ENV = {
    "TWITCH_CLIENT_ID": "cid",
    "TWITCH_CLIENT_SECRET": "secret",
    "TWITCH_BROADCASTER_ID": "b1",
    "TWITCH_BOT_USER_ID": "bot1",
    "TWITCH_BOT_ACCESS_TOKEN": "bot-token",
    "TWITCH_BROADCASTER_ACCESS_TOKEN": "caster-token",
}


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "commands.json").write_text(
        json.dumps({"prefix": "!", "commands": [{"name": "ping", "data": {"text": "pong"}}]})
    )
    return tmp_path


@pytest.fixture
def bot(config_dir):
    settings = BotSettings.from_env({**ENV, "EVENTBOT_CONFIG_DIR": str(config_dir)})
    return EventBot(settings, MagicMock())


def _mock_sessions(bot: EventBot) -> None:
    for session in (bot.bot_session, bot.broadcaster_session):
        session.connect = AsyncMock()
        session.ensure_subscriptions = AsyncMock(return_value=[])
        session.close = AsyncMock()


def test_callbacks_are_split_across_sessions(bot):
    assert set(bot.bot_session._callbacks) == {ChatMessage, Follow}
    assert Raid in bot.broadcaster_session._callbacks
    assert Cheer in bot.broadcaster_session._callbacks
    assert ChatMessage not in bot.broadcaster_session._callbacks


def test_own_chat_messages_are_ignored(bot):
    bot.dispatcher = MagicMock()
    bot.dispatcher.handle_chat_message.return_value = "dispatched"

    assert bot._on_chat_message(make_chat("!ping", user_id="bot1")) is None
    assert bot._on_chat_message(make_chat("!ping")) == "dispatched"
    bot.dispatcher.handle_chat_message.assert_called_once()


def test_commands_reload_swaps_table(bot, config_dir):
    assert bot.dispatcher.command_count == 1
    (config_dir / "commands.json").write_text(
        json.dumps({"prefix": "?", "commands": [{"name": "a"}, {"name": "b"}]})
    )
    assert bot.commands_config.reload()
    assert bot.dispatcher.command_count == 2
    assert bot.dispatcher.prefix == "?"


@pytest.mark.asyncio
async def test_start_and_stop_order(bot):
    _mock_sessions(bot)

    await bot.start()
    try:
        assert bot.scheduler.running
        assert bot.watcher.running
        bot.bot_session.connect.assert_awaited_once()
        bot.broadcaster_session.connect.assert_awaited_once()
        specs = bot.bot_session.ensure_subscriptions.await_args.args[0]
        assert [s.type for s in specs] == ["channel.chat.message", "channel.follow"]
    finally:
        await bot.stop()

    assert not bot.scheduler.running
    assert not bot.watcher.running
    bot.broadcaster_session.close.assert_awaited_once()
    bot.bot_session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_subscription_failure_is_not_fatal(bot, caplog):
    _mock_sessions(bot)
    bot.broadcaster_session.ensure_subscriptions.side_effect = NoSessionError("no welcome")

    await bot.start()
    await bot.stop()

    assert "EventSub subscriptions for broadcaster incomplete" in caplog.text


def test_health_check_passes(monkeypatch, config_dir):
    for key, value in {**ENV, "EVENTBOT_CONFIG_DIR": str(config_dir)}.items():
        monkeypatch.setenv(key, value)
    assert health_check() == 0


def test_health_check_reports_bad_config(monkeypatch, config_dir, caplog):
    for key, value in {**ENV, "EVENTBOT_CONFIG_DIR": str(config_dir)}.items():
        monkeypatch.setenv(key, value)
    (config_dir / "events.json").write_text(json.dumps({"rate_limit_seconds": "fast"}))

    assert health_check() == 1
    assert "events.json" in caplog.text


def test_health_check_reports_bad_settings(monkeypatch, config_dir):
    for key, value in ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("TWITCH_CLIENT_ID", "")
    assert health_check() == 1
