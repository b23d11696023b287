"""Chat command dispatcher.

Turns ``ChatMessage`` events into command replies. Each invocation runs the
same pipeline: prefix match, tokenize, resolve, permission gate, stream
context refresh, cooldown gate, usage gate, execute, send and record.

Cooldown and usage state lives in memory only and is keyed by canonical
command name and by ``(command, user_id)``. Usage counters are scoped to the
current broadcast and reset when the live stream id changes; cooldowns
survive that. Reloading the command table resets both.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..api.protocols import ChatAPI
from ..chat.events import ChatMessage
from ..config.model import CommandDef, CommandFile
from ..constants import STREAM_CONTEXT_REFRESH_SECONDS
from ..errors.commands import (
    CooldownActive,
    GateRejection,
    HandlerError,
    PermissionDenied,
    UsageExhausted,
)
from ..logging_config import log_structured_error
from .handlers import CommandContext, CommandHandlers, Handler, static_handler
from .permissions import has_permission


@dataclass
class _CommandTable:
    prefix: str = "!"
    by_name: dict[str, CommandDef] = field(default_factory=dict)
    alias_to_name: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, config: CommandFile) -> _CommandTable:
        table = cls(prefix=config.prefix)
        for cmd in config.commands:
            name = cmd.name.strip().lower()
            if not name:
                continue
            # Later duplicates overwrite earlier ones
            table.by_name[name] = cmd
            for alias in cmd.aliases:
                table.alias_to_name[alias.lower()] = name
        return table

    def resolve(self, token: str) -> tuple[str, CommandDef] | None:
        key = token.lower()
        if key in self.by_name:
            return key, self.by_name[key]
        name = self.alias_to_name.get(key)
        if name is not None and name in self.by_name:
            return name, self.by_name[name]
        return None


class CommandDispatcher:
    """Matches chat text to configured commands and enforces their policy.

    Args:
        api: Outbound chat API.
        broadcaster_id: Channel the bot serves.
        bot_user_id: Identity replies are sent as.
        handlers: Dynamic handler registry.
        commands: Initial command table.
        clock: Monotonic clock for cooldowns and the stream refresh interval.
        stream_refresh_interval: Minimum seconds between live-stream checks.
    """

    def __init__(
        self,
        api: ChatAPI,
        broadcaster_id: str,
        bot_user_id: str,
        *,
        handlers: CommandHandlers | None = None,
        commands: CommandFile | None = None,
        clock: Callable[[], float] = time.monotonic,
        stream_refresh_interval: float = STREAM_CONTEXT_REFRESH_SECONDS,
    ) -> None:
        self._api = api
        self._broadcaster_id = broadcaster_id
        self._bot_user_id = bot_user_id
        self._handlers = handlers or CommandHandlers()
        self._clock = clock
        self._stream_refresh_interval = stream_refresh_interval

        self._lock = threading.Lock()
        self._table = _CommandTable()
        self._next_global: dict[str, float] = {}
        self._next_user: dict[tuple[str, str], float] = {}
        self._global_usage: dict[str, int] = {}
        self._user_usage: dict[tuple[str, str], int] = {}

        self._command_locks: dict[str, asyncio.Lock] = {}
        self._stream_lock = asyncio.Lock()
        self._current_stream_id: str | None = None
        self._last_stream_check: float | None = None

        if commands is not None:
            self.load_commands(commands)

    @property
    def prefix(self) -> str:
        with self._lock:
            return self._table.prefix

    @property
    def command_count(self) -> int:
        with self._lock:
            return len(self._table.by_name)

    def load_commands(self, config: CommandFile) -> None:
        """Atomically replace the command table and reset all counters."""
        table = _CommandTable.build(config)
        with self._lock:
            self._table = table
            self._next_global.clear()
            self._next_user.clear()
            self._global_usage.clear()
            self._user_usage.clear()
        logging.info(
            f"📋 Loaded {len(table.by_name)} commands (prefix {table.prefix!r})"
        )

    def resolve(self, token: str) -> CommandDef | None:
        with self._lock:
            found = self._table.resolve(token)
        return found[1] if found else None

    async def handle_chat_message(self, msg: ChatMessage) -> bool:
        """Run one chat message through the command pipeline.

        Returns:
            bool: True if a reply was sent.
        """
        with self._lock:
            table = self._table
        text = msg.text or ""
        if not text.startswith(table.prefix):
            return False
        body = text[len(table.prefix):].strip()
        if not body:
            return False
        parts = body.split(None, 1)
        token = parts[0]
        args = parts[1].strip() if len(parts) > 1 else ""

        found = table.resolve(token)
        if found is None:
            return False
        name, cmd = found

        if not has_permission(cmd.permission, msg):
            denied = PermissionDenied(name, msg.chatter_user_id, cmd.permission.label)
            logging.info(f"🚫 {denied}")
            return False

        await self._refresh_stream_context()

        lock = self._command_locks.get(name)
        if lock is None:
            lock = self._command_locks[name] = asyncio.Lock()
        async with lock:
            try:
                self._check_gates(name, cmd, msg.chatter_user_id)
            except GateRejection as e:
                logging.debug(f"⏳ {e}")
                return False

            reply = await self._execute(name, cmd, msg, args, table.prefix)
            if not reply or not reply.strip():
                return False

            reply_id = msg.message_id if cmd.reply_to_user else None
            try:
                await self._api.send_chat_message(
                    self._broadcaster_id, self._bot_user_id, reply, reply_id
                )
            except Exception as e:
                log_structured_error(
                    "command",
                    f"Sending reply for '{name}' failed",
                    exception=e,
                    context={"command": name, "user": msg.chatter_user_login},
                )
                return False

            self._record(name, cmd, msg.chatter_user_id)
        logging.info(f"💬 Command '{name}' sent for {msg.chatter_user_login}")
        return True

    def _check_gates(self, name: str, cmd: CommandDef, user_id: str) -> None:
        now = self._clock()
        key = (name, user_id)
        with self._lock:
            if cmd.global_cooldown > 0:
                until = self._next_global.get(name, 0.0)
                if now < until:
                    raise CooldownActive(name, user_id, "global", until - now)
            if cmd.user_cooldown > 0:
                until = self._next_user.get(key, 0.0)
                if now < until:
                    raise CooldownActive(name, user_id, "user", until - now)
            if cmd.global_usage > 0 and self._global_usage.get(name, 0) >= cmd.global_usage:
                raise UsageExhausted(name, user_id, "global", cmd.global_usage)
            if cmd.user_usage > 0 and self._user_usage.get(key, 0) >= cmd.user_usage:
                raise UsageExhausted(name, user_id, "user", cmd.user_usage)

    def _record(self, name: str, cmd: CommandDef, user_id: str) -> None:
        now = self._clock()
        key = (name, user_id)
        with self._lock:
            if cmd.global_cooldown > 0:
                self._next_global[name] = now + cmd.global_cooldown
            if cmd.user_cooldown > 0:
                self._next_user[key] = now + cmd.user_cooldown
            if cmd.global_usage > 0:
                self._global_usage[name] = self._global_usage.get(name, 0) + 1
            if cmd.user_usage > 0:
                self._user_usage[key] = self._user_usage.get(key, 0) + 1

    def _select_handler(self, cmd: CommandDef) -> Handler | None:
        if cmd.type == "static":
            return static_handler
        return self._handlers.resolve(cmd)

    async def _execute(
        self, name: str, cmd: CommandDef, msg: ChatMessage, args: str, prefix: str
    ) -> str | None:
        handler = self._select_handler(cmd)
        if handler is None:
            logging.debug(f"No handler for dynamic command '{name}'")
            return None
        ctx = CommandContext(
            api=self._api,
            broadcaster_id=self._broadcaster_id,
            bot_user_id=self._bot_user_id,
            message=msg,
            prefix=prefix,
        )
        try:
            return await handler(ctx, cmd, args)
        except Exception as e:
            error = HandlerError(name, e)
            log_structured_error(
                "command",
                str(error),
                context={"command": name, "user": msg.chatter_user_login},
                level=logging.WARNING,
            )
            return None

    async def _refresh_stream_context(self) -> None:
        """Reset usage counters when the live stream id changed.

        Checked at most once per refresh interval across all commands.
        """
        async with self._stream_lock:
            now = self._clock()
            last = self._last_stream_check
            if last is not None and now - last < self._stream_refresh_interval:
                return
            self._last_stream_check = now
            try:
                stream = await self._api.get_stream(self._broadcaster_id)
            except Exception as e:
                logging.warning(f"⚠️ Stream context refresh failed: {e}")
                return
            stream_id = stream.id if stream is not None else None
            if stream_id == self._current_stream_id:
                return
            previous, self._current_stream_id = self._current_stream_id, stream_id
        with self._lock:
            self._global_usage.clear()
            self._user_usage.clear()
        logging.info(
            f"🔁 Stream changed ({previous or 'offline'} -> {stream_id or 'offline'}), usage counters reset"
        )
