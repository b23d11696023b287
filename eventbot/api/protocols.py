"""Protocol definitions for the outbound collaborators.

The core pipeline only talks to these interfaces, so tests and alternative
backends can substitute any object with the same methods.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True, slots=True)
class UserIdentity:
    id: str
    login: str
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.login


@dataclass(frozen=True, slots=True)
class StreamInfo:
    """A live stream. ``id`` is the broadcast session identity."""

    id: str
    user_id: str
    started_at: datetime | None = None
    game_name: str = ""
    title: str = ""


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    broadcaster_id: str
    title: str = ""
    game_id: str = ""
    game_name: str = ""


@dataclass(frozen=True, slots=True)
class GameInfo:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Quote:
    id: int
    text: str


class TokenProvider(Protocol):
    """Credential for one identity (bot user, broadcaster user or app)."""

    async def ensure_valid(self) -> bool:
        """Refresh the credential if it is missing or close to expiry."""
        ...

    def apply_auth_headers(self, headers: MutableMapping[str, str]) -> None:
        """Add Authorization and Client-Id headers to an outgoing request."""
        ...


class ChatAPI(Protocol):
    """Outbound chat/channel operations used by the bot."""

    async def send_chat_message(
        self,
        broadcaster_id: str,
        sender_id: str,
        text: str,
        reply_parent_id: str | None = None,
    ) -> None:
        ...

    async def get_stream(self, broadcaster_id: str) -> StreamInfo | None:
        ...

    async def is_live(self, broadcaster_id: str) -> bool:
        ...

    async def get_stream_start_time(self, broadcaster_id: str) -> datetime | None:
        ...

    async def get_user_by_login(self, login: str) -> UserIdentity | None:
        ...

    async def get_channel_info(self, broadcaster_id: str) -> ChannelInfo | None:
        ...

    async def update_title(self, broadcaster_id: str, title: str) -> bool:
        ...

    async def update_game(self, broadcaster_id: str, game_id: str) -> bool:
        ...

    async def find_game(self, query: str) -> GameInfo | None:
        ...

    async def shoutout(
        self, from_broadcaster_id: str, to_broadcaster_id: str, moderator_id: str
    ) -> None:
        ...

    async def send_announcement(
        self, broadcaster_id: str, moderator_id: str, text: str, color: str = "primary"
    ) -> None:
        ...

    async def get_follow_since(
        self, broadcaster_id: str, user_id: str, moderator_id: str
    ) -> datetime | None:
        ...

    async def create_clip(self, broadcaster_id: str) -> str | None:
        ...


class QuoteStore(Protocol):
    """Quote persistence consumed by the quote commands."""

    async def get_random(self) -> Quote | None:
        ...

    async def get_by_id(self, quote_id: int) -> Quote | None:
        ...

    async def search(self, term: str) -> Quote | None:
        ...

    async def add(self, text: str, added_by_id: str, added_by_login: str) -> int:
        ...

    async def delete(self, quote_id: int) -> bool:
        ...
