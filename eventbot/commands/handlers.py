"""Command handlers.

A handler receives the invocation context, its ``CommandDef`` and the raw
argument string, and returns the chat text to send or None to stay silent.
Handlers may call the outbound API for side effects (announcements, title
changes); the dispatcher only ever sends the returned text.
"""

from __future__ import annotations

import calendar
import logging
import re
import threading
import time
import unicodedata
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..api.protocols import ChatAPI, QuoteStore
from ..chat.events import ChatMessage
from ..config.model import CommandDef, ModToolsConfig, SanitizationConfig
from ..constants import DEFAULT_TIMEZONE
from ..utils.helpers import format_uptime, render_template
from .permissions import is_mod_or_broadcaster


@dataclass(frozen=True, slots=True)
class CommandContext:
    api: ChatAPI
    broadcaster_id: str
    bot_user_id: str
    message: ChatMessage
    prefix: str = "!"


Handler = Callable[[CommandContext, CommandDef, str], Awaitable[str | None]]


async def static_handler(ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
    """Return the configured ``data.text``; blank text means no output."""
    text = cmd.data.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return text


def sanitize(text: str, rules: SanitizationConfig) -> str:
    """Clean user-supplied channel metadata according to mod-tools rules."""
    if rules.strip_control_chars:
        text = "".join(ch for ch in text if unicodedata.category(ch) != "Cc" or ch == " ")
    if rules.collapse_whitespace:
        text = re.sub(r"\s+", " ", text)
    if rules.trim:
        text = text.strip()
    return text


def _target_login(args: str) -> str:
    return args.strip().split(" ", 1)[0].lstrip("@") if args.strip() else ""


def _add_months(d: date, months: int) -> date:
    year, month = divmod(d.month - 1 + months, 12)
    year += d.year
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def calendar_age(since: date, today: date) -> str:
    """Calendar-accurate age such as ``1y 2m 3d``; at least ``0d``."""
    total_months = (today.year - since.year) * 12 + today.month - since.month
    if total_months > 0 and _add_months(since, total_months) > today:
        total_months -= 1
    total_months = max(0, total_months)
    years, months = divmod(total_months, 12)
    days = (today - _add_months(since, total_months)).days
    parts = []
    if years > 0:
        parts.append(f"{years}y")
    if months > 0:
        parts.append(f"{months}m")
    if days > 0 or not parts:
        parts.append(f"{max(0, days)}d")
    return " ".join(parts)


class _ChangeGate:
    """Shared next-allowed time for a channel metadata setter."""

    def __init__(self, clock: Callable[[], float]):
        self._clock = clock
        self._next_allowed = 0.0
        self._lock = threading.Lock()

    def try_acquire(self, cooldown: float) -> bool:
        with self._lock:
            now = self._clock()
            if now < self._next_allowed:
                return False
            self._next_allowed = now + max(0.0, cooldown)
            return True


class CommandHandlers:
    """Registry of the named dynamic handlers.

    Dynamic commands are looked up by ``data.handler`` when present, else by
    their canonical name.

    Args:
        modtools: Returns the current mod-tools config snapshot.
        store: Quote persistence; quote commands are silent without one.
        timezone: IANA zone used by time-of-day commands.
        clock: Monotonic clock for the title/game change cooldowns.
        utcnow: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        *,
        modtools: Callable[[], ModToolsConfig] = ModToolsConfig,
        store: QuoteStore | None = None,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._modtools = modtools
        self._store = store
        self._timezone = timezone
        self._utcnow = utcnow
        self._title_gate = _ChangeGate(clock)
        self._game_gate = _ChangeGate(clock)
        self._handlers: dict[str, Handler] = {
            "uptime": self.uptime,
            "shoutout": self.shoutout,
            "so": self.shoutout,
            "softshout": self.softshout,
            "sso": self.softshout,
            "title": self.title,
            "game": self.game,
            "followage": self.followage,
            "time": self.current_time,
            "xmas": self.xmas,
            "clip": self.clip,
            "quote": self.quote,
            "addquote": self.addquote,
            "delquote": self.delquote,
        }

    def register(self, name: str, handler: Handler) -> None:
        self._handlers[name.lower()] = handler

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def resolve(self, cmd: CommandDef) -> Handler | None:
        key = cmd.data.get("handler")
        if not isinstance(key, str) or not key.strip():
            key = cmd.name
        return self._handlers.get(key.strip().lower())

    def _local_zone(self) -> tuple[ZoneInfo | None, str]:
        try:
            return ZoneInfo(self._timezone), self._timezone
        except (ZoneInfoNotFoundError, ValueError):
            return None, f"{self._timezone} (UTC fallback)"

    def _local_now(self) -> tuple[datetime, str]:
        zone, label = self._local_zone()
        now = self._utcnow()
        return (now.astimezone(zone) if zone else now), label

    # --- stream info -------------------------------------------------------

    async def uptime(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        started_at = await ctx.api.get_stream_start_time(ctx.broadcaster_id)
        if started_at is None:
            return "Stream offline"
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=UTC)
        elapsed = (self._utcnow() - started_at).total_seconds()
        return f"Uptime: {format_uptime(elapsed)}"

    async def clip(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        if not await ctx.api.is_live(ctx.broadcaster_id):
            return "❌ Can't clip when offline"
        clip_id = await ctx.api.create_clip(ctx.broadcaster_id)
        if not clip_id:
            return None
        return f"📽️ Here's your clip! → https://clips.twitch.tv/{clip_id}"

    # --- shoutouts ---------------------------------------------------------

    async def shoutout(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        """Official shoutout plus an announcement; never replies in chat."""
        config = self._modtools().shoutout
        if not config.enabled or not is_mod_or_broadcaster(ctx.message):
            return None
        login = _target_login(args)
        if not login:
            return None
        user = await ctx.api.get_user_by_login(login)
        if user is None:
            return None

        try:
            await ctx.api.shoutout(ctx.broadcaster_id, user.id, ctx.bot_user_id)
        except Exception as e:
            # Shoutouts have their own server-side cooldown; the announcement still goes out
            logging.info(f"📣 Official shoutout for {user.login} failed: {e}")

        live = await ctx.api.is_live(user.id)
        channel = await ctx.api.get_channel_info(user.id)
        game = (channel.game_name if channel else "") or "Just Chatting"
        text = render_template(
            config.live_template if live else config.offline_template,
            {"user.display": user.label, "user.login": user.login, "game": game},
        )
        try:
            await ctx.api.send_announcement(
                ctx.broadcaster_id, ctx.bot_user_id, text, config.announcement_color
            )
        except Exception as e:
            logging.warning(f"⚠️ Shoutout announcement for {user.login} failed: {e}")
        return None

    async def softshout(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        """Announcement-only shoutout with templates from ``data``."""
        login = _target_login(args)
        if not login:
            return None
        user = await ctx.api.get_user_by_login(login)
        if user is None:
            return None

        live = await ctx.api.get_stream(user.id) is not None
        channel = await ctx.api.get_channel_info(user.id)
        game = (channel.game_name if channel else "").strip() or "something great"

        data = cmd.data
        color = data.get("announce_color") if isinstance(data.get("announce_color"), str) else "green"
        live_tpl = data.get("announce_live")
        offline_tpl = data.get("announce_offline")
        if not isinstance(live_tpl, str):
            live_tpl = (
                "👍 Please consider following the lovely {name} - they are LIVE NOW "
                "streaming {game} ➡️ https://www.twitch.tv/{user.name}"
            )
        if not isinstance(offline_tpl, str):
            offline_tpl = (
                "👍 Please consider following the lovely {name} - they were last seen "
                "streaming {game} ➡️ https://www.twitch.tv/{user.name}"
            )

        text = render_template(
            live_tpl if live else offline_tpl,
            {"name": user.label, "user.name": user.login, "game": game},
        )
        await ctx.api.send_announcement(ctx.broadcaster_id, ctx.bot_user_id, text, color)
        return None

    # --- channel metadata --------------------------------------------------

    async def title(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        wanted = args.strip()
        if not wanted:
            channel = await ctx.api.get_channel_info(ctx.broadcaster_id)
            current = channel.title.strip() if channel else ""
            return f"Current title: {current or '(unknown)'}"

        if not is_mod_or_broadcaster(ctx.message):
            return None
        modtools = self._modtools()
        if not self._title_gate.try_acquire(modtools.cooldowns.title_change_seconds):
            return None
        clean = sanitize(wanted, modtools.sanitization)
        if not clean:
            return None
        if not await ctx.api.update_title(ctx.broadcaster_id, clean):
            return None
        logging.info(
            f"📝 Title changed by {ctx.message.chatter_user_login} "
            f"({ctx.message.chatter_user_id}) -> {clean!r}"
        )
        return f"Title changed to --> {clean}"

    async def game(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        wanted = args.strip()
        if not wanted:
            channel = await ctx.api.get_channel_info(ctx.broadcaster_id)
            current = channel.game_name.strip() if channel else ""
            return f"Current category: {current or '(none)'}"

        if not is_mod_or_broadcaster(ctx.message):
            return None
        if not self._game_gate.try_acquire(self._modtools().cooldowns.game_change_seconds):
            return None

        game_name: str | None = None
        if wanted.isdigit():
            game_id = wanted
            try:
                found = await ctx.api.find_game(wanted)
                if found is not None:
                    game_name = found.name
            except Exception as e:
                logging.debug(f"Game name lookup for id {wanted} failed: {e}")
        else:
            found = await ctx.api.find_game(wanted)
            if found is None:
                return None
            game_id, game_name = found.id, found.name

        if not await ctx.api.update_game(ctx.broadcaster_id, game_id):
            return None
        shown = game_name or wanted
        logging.info(
            f"🎮 Category changed by {ctx.message.chatter_user_login} "
            f"({ctx.message.chatter_user_id}) -> {shown!r}"
        )
        return f"Game changed to --> {shown}"

    # --- viewers -----------------------------------------------------------

    async def followage(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        msg = ctx.message
        login = _target_login(args)
        can_target_others = is_mod_or_broadcaster(msg)

        if not login or not can_target_others:
            user_id, label = msg.chatter_user_id, msg.chatter_label
        else:
            user = await ctx.api.get_user_by_login(login)
            if user is None:
                return f"User '{login}' not found."
            user_id, label = user.id, user.label

        since = await ctx.api.get_follow_since(ctx.broadcaster_id, user_id, ctx.bot_user_id)
        if since is None:
            return f"😢 {label} is not following." if can_target_others else "😢 You're not following."

        age = calendar_age(since.date(), self._utcnow().date())
        since_str = since.strftime("%Y-%m-%d")
        if can_target_others:
            return f"📏 Followage for {label}: {age} (since {since_str})"
        return f"📏 You've been following for {age} (since {since_str})."

    async def current_time(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        local, label = self._local_now()
        return f"Current time ({label}): {local:%Y-%m-%d %H:%M:%S}"

    async def xmas(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        today = self._local_now()[0].date()
        target = date(today.year, 12, 25)
        if today > target:
            target = date(today.year + 1, 12, 25)
        days = (target - today).days
        if days == 0:
            return "🎄 It's Christmas today! 🎁"
        return f"🎄 There are {days} day{'' if days == 1 else 's'} to Christmas! 🎅"

    # --- quotes ------------------------------------------------------------

    async def quote(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        if self._store is None:
            return None
        query = args.strip()
        if not query:
            found = await self._store.get_random()
            return f"Quote #{found.id}: {found.text}" if found else "No quotes yet."
        if query.isdigit():
            found = await self._store.get_by_id(int(query))
            return f"Quote #{found.id}: {found.text}" if found else f"No quote with id {query}."
        found = await self._store.search(query)
        return f"Quote #{found.id}: {found.text}" if found else "No matching quote found."

    async def addquote(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        if self._store is None:
            return None
        text = args.strip()
        if not text:
            return "Please provide a quote text."
        msg = ctx.message
        quote_id = await self._store.add(
            text, msg.chatter_user_id, msg.chatter_user_login or msg.chatter_user_name
        )
        return f"Quote #{quote_id} added."

    async def delquote(self, ctx: CommandContext, cmd: CommandDef, args: str) -> str | None:
        if self._store is None:
            return None
        raw = args.strip()
        if not raw.isdigit():
            return f"Usage: {ctx.prefix}delquote <id>"
        quote_id = int(raw)
        if await self._store.delete(quote_id):
            return f"Quote #{quote_id} deleted."
        return f"No quote with id {quote_id}."
