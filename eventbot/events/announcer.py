"""Chat announcements for channel events.

Every category runs the same decision: category cooldown, then the shared
cross-category gap, then render and send. Both timestamps are reserved at
decision time, before the send is awaited, so concurrent events cannot both
pass the gate. Follows additionally support actor dedupe and an optional
debounced batch.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable

from ..api.protocols import ChatAPI
from ..chat.events import (
    Cheer,
    Follow,
    Raid,
    Redemption,
    Subscribe,
    SubscriptionGift,
    SubscriptionMessage,
)
from ..config.model import EventsConfig
from ..constants import EVENTS_MIN_RATE_LIMIT_SECONDS
from ..logging_config import log_structured_error
from ..utils.helpers import mask_id, render_template

_TIERS = {"1000": "Tier 1", "2000": "Tier 2", "3000": "Tier 3", "prime": "Prime"}


def tier_label(tier: str) -> str:
    return _TIERS.get(tier.strip().lower(), tier or "Tier 1")


def _display(name: str, login: str, fallback: str = "(someone)") -> str:
    return name or login or fallback


class EventAnnouncer:
    """Turns follow/sub/cheer/raid/redemption events into chat messages.

    Args:
        api: Outbound chat API.
        broadcaster_id: Channel to post into.
        bot_user_id: Identity messages are sent as.
        config: Returns the current events config snapshot.
        clock: Monotonic clock for cooldowns, dedupe and the global gap.
        sleep: Awaitable delay used by the follow batch timer.
    """

    def __init__(
        self,
        api: ChatAPI,
        broadcaster_id: str,
        bot_user_id: str,
        config: Callable[[], EventsConfig] = EventsConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._broadcaster_id = broadcaster_id
        self._bot_user_id = bot_user_id
        self._config = config
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._next_send = 0.0
        self._category_next: dict[str, float] = {}
        self._follow_seen: dict[str, float] = {}
        self._batch_names: dict[str, str] = {}
        self._batch_task: asyncio.Task[None] | None = None

    @property
    def pending_batch(self) -> list[str]:
        with self._lock:
            return list(self._batch_names.values())

    # --- gates ---------------------------------------------------------------

    def _reserve(self, category: str | None, cooldown: float, rate_limit: float) -> bool:
        """Check and claim the category cooldown and the global gap together."""
        with self._lock:
            now = self._clock()
            if category is not None and now < self._category_next.get(category, 0.0):
                return False
            if now < self._next_send:
                return False
            if category is not None:
                self._category_next[category] = now + max(0.0, cooldown)
            gap = max(EVENTS_MIN_RATE_LIMIT_SECONDS, rate_limit)
            # Monotonic: the next allowed send only ever moves forward
            self._next_send = max(self._next_send, now + gap)
            return True

    async def _send(self, text: str, what: str) -> bool:
        try:
            await self._api.send_chat_message(self._broadcaster_id, self._bot_user_id, text)
        except Exception as e:
            log_structured_error("announcer", f"Sending {what} announcement failed", exception=e)
            return False
        logging.info(f"📣 {what.capitalize()} announced: {text}")
        return True

    # --- follows ------------------------------------------------------------

    async def handle_follow(self, ev: Follow) -> bool:
        cfg = self._config()
        follows = cfg.follows
        if not follows.enabled:
            return False

        name = ev.name_or_login
        key = ev.user_id or ev.user_login.lower()
        with self._lock:
            now = self._clock()
            self._prune_seen(now)
            if self._follow_seen.get(key, 0.0) > now:
                logging.debug(f"Follow deduped: {name} ({mask_id(key)})")
                return False
            self._follow_seen[key] = now + max(1.0, follows.dedupe_window_seconds)
            if follows.batching.enabled:
                self._batch_names.setdefault(name.lower(), name)
                self._arm_batch_timer(follows.batching.window_seconds)
                logging.info(f"📥 Follow batched: {name}")
                return False

        if not self._reserve("follow", follows.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Follow announcement for {name} suppressed by rate limit")
            return False
        text = render_template(follows.template, {"user.name": name, "user.login": ev.user_login})
        return await self._send(text, "follow")

    def _prune_seen(self, now: float) -> None:
        expired = [k for k, until in self._follow_seen.items() if until <= now]
        for k in expired:
            del self._follow_seen[k]

    def _arm_batch_timer(self, window_seconds: float) -> None:
        # Caller holds self._lock; replacing the handle under it keeps one timer alive
        old = self._batch_task
        if old is not None and not old.done():
            old.cancel()
        self._batch_task = asyncio.get_running_loop().create_task(
            self._flush_after(max(1.0, window_seconds)), name="follow-batch"
        )

    async def _flush_after(self, delay: float) -> None:
        await self._sleep(delay)
        await self.flush_follow_batch()

    async def flush_follow_batch(self) -> bool:
        """Send the accumulated follow names as one message."""
        with self._lock:
            if self._batch_task is asyncio.current_task():
                self._batch_task = None
            names = list(self._batch_names.values())
            self._batch_names.clear()
        if not names:
            return False

        cfg = self._config()
        follows = cfg.follows
        if not follows.enabled or not follows.batching.enabled:
            logging.info(f"🔇 Dropped follow batch of {len(names)}, batching disabled")
            return False
        if not self._reserve(None, 0.0, cfg.rate_limit_seconds):
            logging.info(f"🔇 Follow batch of {len(names)} suppressed by rate limit")
            return False
        text = render_template(follows.batching.template, {"user.list": ", ".join(names)})
        return await self._send(text, "follow batch")

    # --- subs -----------------------------------------------------------------

    async def handle_subscribe(self, ev: Subscribe) -> bool:
        cfg = self._config()
        subs = cfg.subs
        if not subs.enabled:
            return False
        if ev.is_gift:
            # The matching channel.subscription.gift event is announced instead
            return False
        name = _display(ev.user_name, ev.user_login)
        if not self._reserve("subscribe", subs.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Sub announcement for {name} suppressed by rate limit")
            return False
        text = render_template(
            subs.template_new,
            {"user.name": name, "user.login": ev.user_login, "sub.tier": tier_label(ev.tier)},
        )
        return await self._send(text, "sub")

    async def handle_subscription_gift(self, ev: SubscriptionGift) -> bool:
        cfg = self._config()
        subs = cfg.subs
        if not subs.enabled:
            return False
        gifter = "Anonymous" if ev.is_anonymous else _display(ev.user_name, ev.user_login, "Anonymous")
        if not self._reserve("gift", subs.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Gift announcement for {gifter} suppressed by rate limit")
            return False
        count = max(1, ev.total)
        recipients = "1 viewer" if count == 1 else f"{count} viewers"
        text = render_template(
            subs.template_gift,
            {
                "gifter.name": gifter,
                "user.name": recipients,
                "gift.count": count,
                "sub.tier": tier_label(ev.tier),
            },
        )
        return await self._send(text, "gift sub")

    async def handle_subscription_message(self, ev: SubscriptionMessage) -> bool:
        """Announce a resub, plus the resub message when it has text.

        One gate check covers both sends.
        """
        cfg = self._config()
        subs = cfg.subs
        if not subs.enabled:
            return False
        name = _display(ev.user_name, ev.user_login)
        if not self._reserve("resub", subs.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Resub announcement for {name} suppressed by rate limit")
            return False
        text = render_template(
            subs.template_resub,
            {
                "user.name": name,
                "user.login": ev.user_login,
                "sub.months": ev.cumulative_months,
                "sub.streak": ev.streak_months,
                "sub.tier": tier_label(ev.tier),
            },
        )
        sent = await self._send(text, "resub")
        message = ev.message.strip()
        if message:
            follow_up = render_template(subs.template_message, {"user.name": name, "message": message})
            sent = await self._send(follow_up, "resub message") or sent
        return sent

    # --- cheers, raids, redemptions -----------------------------------------

    async def handle_cheer(self, ev: Cheer) -> bool:
        cfg = self._config()
        bits = cfg.bits
        if not bits.enabled:
            return False
        name = "Anonymous" if ev.is_anonymous else _display(ev.user_name, ev.user_login, "Anonymous")
        if not self._reserve("cheer", bits.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Cheer announcement for {name} suppressed by rate limit")
            return False
        text = render_template(bits.template, {"user.name": name, "bits.amount": ev.bits})
        return await self._send(text, "cheer")

    async def handle_raid(self, ev: Raid) -> bool:
        cfg = self._config()
        raids = cfg.raids
        if not raids.enabled:
            return False
        name = _display(ev.from_broadcaster_user_name, ev.from_broadcaster_user_login)
        if not self._reserve("raid", raids.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Raid announcement for {name} suppressed by rate limit")
            return False
        text = render_template(raids.template, {"raider.name": name, "raider.viewers": ev.viewers})
        return await self._send(text, "raid")

    async def handle_redemption(self, ev: Redemption) -> bool:
        cfg = self._config()
        redemptions = cfg.redemptions
        if not redemptions.enabled:
            return False
        name = _display(ev.user_name, ev.user_login)
        if not self._reserve("redemption", redemptions.cooldown_seconds, cfg.rate_limit_seconds):
            logging.info(f"🔇 Redemption announcement for {name} suppressed by rate limit")
            return False
        user_input = ev.user_input.strip()
        text = render_template(
            redemptions.template,
            {
                "user.name": name,
                "reward.title": ev.reward_title,
                "reward.input": f": {user_input}" if user_input else "",
            },
        )
        return await self._send(text, "redemption")

    async def aclose(self) -> None:
        """Cancel a pending follow batch timer; queued names are dropped."""
        with self._lock:
            task, self._batch_task = self._batch_task, None
            self._batch_names.clear()
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
