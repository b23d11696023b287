"""Timed promotional announcements.

Runs on a fixed tick, independent of inbound events. Each tick walks the
gates (enabled, live, quiet hours, chat activity, global gap) and then picks
one eligible message by weight.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..api.protocols import ChatAPI
from ..config.model import (
    AnnouncementMessage,
    AnnouncementsConfig,
    QuietHoursConfig,
    parse_clock,
)
from ..constants import (
    ANNOUNCEMENTS_MIN_GAP_FLOOR_MINUTES,
    ANNOUNCEMENTS_MIN_NO_CHAT_MINUTES,
    ANNOUNCEMENTS_TICK_SECONDS,
)
from ..logging_config import log_structured_error
from ..utils.helpers import format_duration


def in_quiet_hours(quiet_hours: QuietHoursConfig | None, now_utc: datetime) -> bool:
    """Check if ``now_utc`` falls inside the local quiet window.

    The window is half-open ``[start, end)`` and wraps past midnight when
    ``start > end``. An unknown time zone disables quiet hours.
    """
    if quiet_hours is None:
        return False
    try:
        zone = ZoneInfo(quiet_hours.timezone)
        start = parse_clock(quiet_hours.start)
        end = parse_clock(quiet_hours.end)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logging.warning(f"⚠️ Ignoring quiet hours: {e}")
        return False
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=UTC)
    now = now_utc.astimezone(zone).time().replace(tzinfo=None)
    if start <= end:
        return start <= now < end
    return now >= start or now < end


def pick_message_index(
    messages: Sequence[AnnouncementMessage],
    last_index: int,
    next_eligible: dict[int, float],
    now: float,
    rng: random.Random,
) -> int:
    """Weighted pick among messages whose interval elapsed.

    The previous pick is skipped unless it is the only message.

    Returns:
        int: Index into ``messages``, or -1 when nothing is eligible.
    """
    eligible: list[tuple[int, int]] = []
    for i, message in enumerate(messages):
        if i == last_index and len(messages) > 1:
            continue
        if now < next_eligible.get(i, 0.0):
            continue
        eligible.append((i, max(1, message.weight)))
    if not eligible:
        return -1

    total = sum(weight for _, weight in eligible)
    roll = rng.randrange(total)
    acc = 0
    for i, weight in eligible:
        acc += weight
        if roll < acc:
            return i
    return eligible[0][0]


class AnnouncementScheduler:
    """Periodically posts one of the configured announcement messages.

    Args:
        api: Outbound chat API (liveness and sending).
        broadcaster_id: Channel to post into.
        bot_user_id: Identity messages are sent as.
        config: Returns the current announcements config snapshot.
        clock: Monotonic clock for pacing and chat activity.
        utcnow: Returns the current aware UTC datetime (quiet hours).
        rng: Random source for weighted selection.
        tick_seconds: Delay between ticks.
        sleep: Awaitable delay used between ticks.
    """

    def __init__(
        self,
        api: ChatAPI,
        broadcaster_id: str,
        bot_user_id: str,
        config: Callable[[], AnnouncementsConfig] = AnnouncementsConfig.disabled,
        *,
        clock: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], datetime] = lambda: datetime.now(UTC),
        rng: random.Random | None = None,
        tick_seconds: float = ANNOUNCEMENTS_TICK_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._broadcaster_id = broadcaster_id
        self._bot_user_id = bot_user_id
        self._config = config
        self._clock = clock
        self._utcnow = utcnow
        self._rng = rng or random.Random()
        self._tick_seconds = tick_seconds
        self._sleep = sleep

        self._lock = threading.Lock()
        self._next_global = 0.0
        self._next_per_message: dict[int, float] = {}
        self._last_index = -1
        self._last_chat = clock()
        self._task: asyncio.Task[None] | None = None

    @property
    def last_index(self) -> int:
        with self._lock:
            return self._last_index

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def note_chat_activity(self, *_: object) -> None:
        """Record that chat is active; usable directly as an event callback."""
        with self._lock:
            self._last_chat = self._clock()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="announcement-scheduler"
        )
        logging.info(f"📢 Announcement scheduler started (every {format_duration(self._tick_seconds)})")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logging.info("📢 Announcement scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_structured_error("scheduler", "Announcement tick failed", exception=e)
            await self._sleep(self._tick_seconds)

    async def tick(self) -> bool:
        """Run the gates once and maybe send an announcement.

        Returns:
            bool: True if a message was sent.
        """
        cfg = self._config()
        if not cfg.enabled or not cfg.messages:
            return False
        if cfg.online_only and not await self._api.is_live(self._broadcaster_id):
            logging.debug("Announcements skipped: stream offline")
            return False
        if in_quiet_hours(cfg.quiet_hours, self._utcnow()):
            logging.debug("Announcements skipped: quiet hours")
            return False

        with self._lock:
            now = self._clock()
            if cfg.activity.enabled:
                window = max(ANNOUNCEMENTS_MIN_NO_CHAT_MINUTES, cfg.activity.no_chat_minutes) * 60
                if now - self._last_chat > window:
                    logging.debug("Announcements skipped: chat idle")
                    return False
            if now < self._next_global:
                return False
            index = pick_message_index(
                cfg.messages, self._last_index, self._next_per_message, now, self._rng
            )
        if index < 0:
            return False
        message = cfg.messages[index]
        text = message.text.strip()
        if not text:
            return False

        await self._api.send_chat_message(self._broadcaster_id, self._bot_user_id, text)

        with self._lock:
            now = self._clock()
            self._last_index = index
            self._next_global = now + max(ANNOUNCEMENTS_MIN_GAP_FLOOR_MINUTES, cfg.min_gap_minutes) * 60
            self._next_per_message[index] = now + max(
                ANNOUNCEMENTS_MIN_GAP_FLOOR_MINUTES, message.min_interval_minutes
            ) * 60
        logging.info(f"📢 Announcement sent (#{index}): {text}")
        return True

    def reset(self) -> None:
        """Forget pacing state, e.g. after the message list changed."""
        with self._lock:
            self._next_global = 0.0
            self._next_per_message.clear()
            self._last_index = -1
