"""
Application wiring for the EventSub chat bot
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from typing import Any

import aiohttp
from pydantic import ValidationError

from .api.twitch import HelixChatAPI, TwitchAPI
from .auth.tokens import AppTokenProvider, UserTokenProvider
from .chat.events import (
    ChatMessage,
    Cheer,
    Follow,
    Raid,
    Redemption,
    Subscribe,
    SubscriptionGift,
    SubscriptionMessage,
)
from .chat.session import ProtocolSession
from .chat.subscriptions import bot_subscriptions, broadcaster_subscriptions
from .commands.dispatcher import CommandDispatcher
from .commands.handlers import CommandHandlers
from .config.model import (
    AnnouncementsConfig,
    BotSettings,
    CommandFile,
    EventsConfig,
    ModToolsConfig,
)
from .config.provider import JsonConfigProvider, validate_file
from .config.watcher import ConfigWatcher
from .constants import (
    ANNOUNCEMENTS_FILE,
    COMMANDS_FILE,
    DEFAULT_TIMEZONE,
    EVENTS_FILE,
    MODTOOLS_FILE,
)
from .errors.eventsub import EventSubError
from .errors.handling import log_error
from .events.announcer import EventAnnouncer
from .logging_config import LoggerConfigurator
from .scheduler.announcements import AnnouncementScheduler
from .utils.helpers import mask_id
from .utils.tasks import BackgroundTasks

CONFIG_MODELS: dict[str, type[Any]] = {
    COMMANDS_FILE: CommandFile,
    EVENTS_FILE: EventsConfig,
    ANNOUNCEMENTS_FILE: AnnouncementsConfig,
    MODTOOLS_FILE: ModToolsConfig,
}


class EventBot:
    """Owns every long-lived component and their start/stop order."""

    def __init__(self, settings: BotSettings, http: aiohttp.ClientSession):
        self.settings = settings
        self.tasks = BackgroundTasks("callbacks")
        config_dir = settings.config_dir

        self.bot_auth = UserTokenProvider(
            http,
            settings.client_id,
            settings.client_secret,
            access_token=settings.bot_access_token or None,
            refresh_token=settings.bot_refresh_token or None,
        )
        self.broadcaster_auth = UserTokenProvider(
            http,
            settings.client_id,
            settings.client_secret,
            access_token=settings.broadcaster_access_token or None,
            refresh_token=settings.broadcaster_refresh_token or None,
        )
        self.app_auth = AppTokenProvider(http, settings.client_id, settings.client_secret)

        self.twitch = TwitchAPI(http)
        self.chat_api = HelixChatAPI(
            self.twitch,
            self.broadcaster_auth,
            app_auth=self.app_auth,
            moderator_auth=self.bot_auth,
        )

        self.commands_config = JsonConfigProvider(
            os.path.join(config_dir, COMMANDS_FILE), CommandFile
        )
        self.events_config = JsonConfigProvider(os.path.join(config_dir, EVENTS_FILE), EventsConfig)
        self.announcements_config = JsonConfigProvider(
            os.path.join(config_dir, ANNOUNCEMENTS_FILE),
            AnnouncementsConfig,
            default_factory=AnnouncementsConfig.disabled,
        )
        self.modtools_config = JsonConfigProvider(
            os.path.join(config_dir, MODTOOLS_FILE), ModToolsConfig
        )

        self.dispatcher = CommandDispatcher(
            self.chat_api,
            settings.broadcaster_id,
            settings.bot_user_id,
            handlers=CommandHandlers(
                modtools=self.modtools_config.snapshot, timezone=DEFAULT_TIMEZONE
            ),
            commands=self.commands_config.snapshot(),
        )
        self.commands_config.set_on_reload(self.dispatcher.load_commands)

        self.announcer = EventAnnouncer(
            self.chat_api,
            settings.broadcaster_id,
            settings.bot_user_id,
            self.events_config.snapshot,
        )
        self.scheduler = AnnouncementScheduler(
            self.chat_api,
            settings.broadcaster_id,
            settings.bot_user_id,
            self.announcements_config.snapshot,
        )
        self.announcements_config.set_on_reload(lambda _cfg: self.scheduler.reset())

        self.bot_session = ProtocolSession(self.twitch, self.bot_auth, name="bot", tasks=self.tasks)
        self.broadcaster_session = ProtocolSession(
            self.twitch, self.broadcaster_auth, name="broadcaster", tasks=self.tasks
        )
        self._register_callbacks()

        self.watcher = ConfigWatcher(config_dir)
        for provider in (
            self.commands_config,
            self.events_config,
            self.announcements_config,
            self.modtools_config,
        ):
            self.watcher.watch(provider.filename, provider.reload)

    def _register_callbacks(self) -> None:
        self.bot_session.on(ChatMessage, self._on_chat_message)
        self.bot_session.on(Follow, self.announcer.handle_follow)

        session = self.broadcaster_session
        session.on(Subscribe, self.announcer.handle_subscribe)
        session.on(SubscriptionMessage, self.announcer.handle_subscription_message)
        session.on(SubscriptionGift, self.announcer.handle_subscription_gift)
        session.on(Cheer, self.announcer.handle_cheer)
        session.on(Raid, self.announcer.handle_raid)
        session.on(Redemption, self.announcer.handle_redemption)

    def _on_chat_message(self, msg: ChatMessage) -> Any:
        if msg.chatter_user_id == self.settings.bot_user_id:
            return None
        self.scheduler.note_chat_activity()
        return self.dispatcher.handle_chat_message(msg)

    async def _subscribe(self, session: ProtocolSession, specs: list[Any]) -> None:
        try:
            await session.ensure_subscriptions(specs)
        except EventSubError as e:
            log_error(f"EventSub subscriptions for {session.name} incomplete", e)

    async def start(self) -> None:
        s = self.settings
        logging.info(
            f"🚀 Starting EventSub bot for broadcaster {mask_id(s.broadcaster_id)} "
            f"as {mask_id(s.bot_user_id)}"
        )
        await self.bot_session.connect()
        await self.broadcaster_session.connect()
        await asyncio.gather(
            self._subscribe(
                self.bot_session,
                bot_subscriptions(s.broadcaster_id, s.bot_user_id, s.moderator_user_id),
            ),
            self._subscribe(self.broadcaster_session, broadcaster_subscriptions(s.broadcaster_id)),
        )
        self.scheduler.start()
        self.watcher.start()
        logging.info("✅ Bot is running")

    async def stop(self) -> None:
        logging.info("🔻 Shutting down")
        self.watcher.stop()
        await self.scheduler.stop()
        await self.broadcaster_session.close()
        await self.bot_session.close()
        await self.announcer.aclose()
        await self.tasks.drain(timeout=5.0)
        if len(self.tasks):
            logging.warning(f"⏱️ Cancelling {len(self.tasks)} callback task(s) still running")
            await self.tasks.cancel_all()


async def wait_for_shutdown_signal() -> None:
    """Block until SIGINT or SIGTERM is received."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def handler(signum: int) -> None:
        if stop.is_set():
            return
        logging.warning(f"🛑 Signal received - initiating shutdown (signal={signum})")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handler, sig)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(handler, signum))
    await stop.wait()


def health_check() -> int:
    """Validate environment settings and config files; return an exit code."""
    try:
        settings = BotSettings.from_env()
    except ValidationError as e:
        logging.error(f"❌ Health check failed: invalid settings: {e}")
        return 1
    problems = [
        problem
        for filename, model in CONFIG_MODELS.items()
        if (problem := validate_file(os.path.join(settings.config_dir, filename), model))
    ]
    for problem in problems:
        logging.error(f"❌ Health check failed: {problem}")
    if problems:
        return 1
    logging.info(f"✅ Health check passed - config dir {settings.config_dir}")
    return 0


async def main() -> None:
    """Main entry point: run the bot until a shutdown signal arrives.

    Raises:
        SystemExit: If settings are invalid or startup fails.
    """
    try:
        settings = BotSettings.from_env()
    except ValidationError as e:
        logging.critical(f"❌ Invalid settings: {e}")
        sys.exit(1)

    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15)) as http:
        bot = EventBot(settings, http)
        try:
            await bot.start()
            await wait_for_shutdown_signal()
        except asyncio.CancelledError:
            raise
        except EventSubError as e:
            log_error("Startup failed", e)
            sys.exit(1)
        finally:
            await bot.stop()
            logging.info("✅ Application shutdown complete")


def run() -> None:
    """Synchronous entry point for the application.

    Raises:
        SystemExit: If a critical error occurs during execution.
    """
    LoggerConfigurator().configure()
    if "--health-check" in sys.argv[1:]:
        logging.info("🏥 Health check mode")
        sys.exit(health_check())
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
    except asyncio.CancelledError:
        sys.exit(0)
    except Exception as e:
        log_error("Top-level error", e)
        sys.exit(1)


if __name__ == "__main__":
    run()
