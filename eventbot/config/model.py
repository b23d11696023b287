"""Pydantic models for the JSON config files and the environment settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import time as dt_time
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..constants import DEFAULT_TIMEZONE


class Permission(IntEnum):
    """Command permission tiers; a higher tier satisfies every lower one."""

    EVERYONE = 0
    SUBSCRIBER = 1
    VIP = 2
    MOD = 3
    BROADCASTER = 4

    @classmethod
    def parse(cls, value: Any) -> Permission:
        """Lenient parse; unknown or missing values mean everyone."""
        if isinstance(value, Permission):
            return value
        key = str(value or "").strip().lower()
        return _PERMISSION_ALIASES.get(key, cls.EVERYONE)

    @property
    def label(self) -> str:
        return self.name.lower()


_PERMISSION_ALIASES = {
    "everyone": Permission.EVERYONE,
    "subscriber": Permission.SUBSCRIBER,
    "sub": Permission.SUBSCRIBER,
    "vip": Permission.VIP,
    "mod": Permission.MOD,
    "moderator": Permission.MOD,
    "broadcaster": Permission.BROADCASTER,
    "owner": Permission.BROADCASTER,
}


# --- commands.json ---------------------------------------------------------


class CommandDef(BaseModel):
    """A single chat command.

    Attributes:
        name: Canonical command name (matched case-insensitively).
        type: ``static`` returns ``data.text``; ``dynamic`` runs a named handler.
        aliases: Alternate tokens resolving to this command.
        permission: Minimum role tier required to run the command.
        global_cooldown: Seconds between successful sends for everyone.
        user_cooldown: Seconds between successful sends for one user.
        global_usage: Successful sends allowed per broadcast (0 = unlimited).
        user_usage: Successful sends allowed per user per broadcast (0 = unlimited).
        reply_to_user: Thread the reply to the triggering message.
        data: Free-form payload interpreted by the handler.
    """

    name: str
    type: str = "static"
    aliases: list[str] = Field(default_factory=list)
    permission: Permission = Permission.EVERYONE
    global_cooldown: float = Field(default=0, ge=0)
    user_cooldown: float = Field(default=0, ge=0)
    global_usage: int = Field(default=0, ge=0)
    user_usage: int = Field(default=0, ge=0)
    reply_to_user: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("permission", mode="before")
    @classmethod
    def parse_permission(cls, v: Any) -> Permission:
        return Permission.parse(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        kind = str(v or "static").strip().lower()
        if kind not in ("static", "dynamic"):
            raise ValueError(f"unknown command type {v!r}")
        return kind

    @field_validator("aliases", mode="before")
    @classmethod
    def clean_aliases(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("aliases must be a list")
        return [a.strip() for a in v if isinstance(a, str) and a.strip()]

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}


class CommandFile(BaseModel):
    prefix: str = Field(default="!", min_length=1)
    commands: list[CommandDef] = Field(default_factory=list)


# --- events.json -----------------------------------------------------------


class FollowBatchingConfig(BaseModel):
    enabled: bool = False
    window_seconds: float = Field(default=20, ge=0)
    template: str = "❤️ Thanks for the follows: {user.list}"


class FollowsConfig(BaseModel):
    enabled: bool = True
    cooldown_seconds: float = Field(default=5, ge=0)
    dedupe_window_seconds: float = Field(default=15, ge=0)
    template: str = "❤️ Thanks for the follow, {user.name}!"
    batching: FollowBatchingConfig = Field(default_factory=FollowBatchingConfig)


class SubsConfig(BaseModel):
    enabled: bool = False
    cooldown_seconds: float = Field(default=3, ge=0)
    template_new: str = "🎉 {user.name} just subscribed at {sub.tier}!"
    template_gift: str = "🎁 {gifter.name} gifted a sub to {user.name}!"
    template_resub: str = "🔁 {user.name} resubbed ({sub.months} months)!"
    template_message: str = "💬 {user.name}: {message}"


class BitsConfig(BaseModel):
    enabled: bool = False
    cooldown_seconds: float = Field(default=2, ge=0)
    template: str = "✨ {user.name} cheered {bits.amount} bits!"


class RaidsConfig(BaseModel):
    enabled: bool = False
    cooldown_seconds: float = Field(default=5, ge=0)
    template: str = "🚀 Raid from {raider.name} with {raider.viewers} viewers — welcome in!"


class RedemptionsConfig(BaseModel):
    enabled: bool = False
    cooldown_seconds: float = Field(default=2, ge=0)
    template: str = "🟣 {user.name} redeemed “{reward.title}”{reward.input}"


class EventsConfig(BaseModel):
    rate_limit_seconds: float = Field(default=1.2, ge=0)
    follows: FollowsConfig = Field(default_factory=FollowsConfig)
    subs: SubsConfig = Field(default_factory=SubsConfig)
    bits: BitsConfig = Field(default_factory=BitsConfig)
    raids: RaidsConfig = Field(default_factory=RaidsConfig)
    redemptions: RedemptionsConfig = Field(default_factory=RedemptionsConfig)


# --- announcements.json ----------------------------------------------------


def parse_clock(value: str) -> dt_time:
    """Parse a 24h ``HH:MM`` or ``HH:MM:SS`` clock into a naive time.

    A single-digit hour (``7:30``) is accepted. Raises ValueError when the
    value is malformed or carries a UTC offset.
    """
    text = value.strip()
    if len(text.partition(":")[0]) == 1:
        text = f"0{text}"
    parsed = dt_time.fromisoformat(text)
    if parsed.tzinfo is not None:
        raise ValueError(f"Clock value must not carry an offset: {value!r}")
    return parsed


class QuietHoursConfig(BaseModel):
    """Local-time window (``HH:MM``), may span midnight."""

    start: str = "00:00"
    end: str = "08:00"
    timezone: str = DEFAULT_TIMEZONE

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        parse_clock(v)
        return v.strip()


class ActivityConfig(BaseModel):
    enabled: bool = False
    no_chat_minutes: float = Field(default=10, ge=0)


class AnnouncementMessage(BaseModel):
    text: str = ""
    min_interval_minutes: float = Field(default=30, ge=0)
    weight: int = 1

    @field_validator("weight", mode="before")
    @classmethod
    def clamp_weight(cls, v: Any) -> int:
        try:
            return max(1, int(v))
        except (TypeError, ValueError):
            return 1


class AnnouncementsConfig(BaseModel):
    enabled: bool = True
    online_only: bool = True
    min_gap_minutes: float = Field(default=30, ge=0)
    quiet_hours: QuietHoursConfig | None = None
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
    messages: list[AnnouncementMessage] = Field(default_factory=list)

    @classmethod
    def disabled(cls) -> AnnouncementsConfig:
        return cls(enabled=False)


# --- modtools.json ---------------------------------------------------------


class ShoutoutConfig(BaseModel):
    enabled: bool = True
    announcement_color: str = "green"
    live_template: str = (
        "Please go and follow {user.display}! They were last seen streaming {game} "
        "at https://www.twitch.tv/{user.login}"
    )
    offline_template: str = (
        "Please go and follow {user.display}! Catch them at https://www.twitch.tv/{user.login}"
    )


class ModCooldownsConfig(BaseModel):
    title_change_seconds: float = Field(default=5, ge=0)
    game_change_seconds: float = Field(default=5, ge=0)


class SanitizationConfig(BaseModel):
    collapse_whitespace: bool = True
    strip_control_chars: bool = True
    trim: bool = True


class ModToolsConfig(BaseModel):
    shoutout: ShoutoutConfig = Field(default_factory=ShoutoutConfig)
    cooldowns: ModCooldownsConfig = Field(default_factory=ModCooldownsConfig)
    sanitization: SanitizationConfig = Field(default_factory=SanitizationConfig)


# --- environment -----------------------------------------------------------


class BotSettings(BaseModel):
    """Process settings read from the environment.

    Attributes:
        client_id: Twitch application client id.
        client_secret: Twitch application client secret.
        broadcaster_id: Channel the bot serves.
        bot_user_id: User id the bot chats as.
        moderator_user_id: Moderator id used for follow subscriptions.
        config_dir: Directory holding the JSON config files.
    """

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    broadcaster_id: str = Field(min_length=1)
    bot_user_id: str = Field(min_length=1)
    moderator_user_id: str = ""
    bot_access_token: str = ""
    bot_refresh_token: str = ""
    broadcaster_access_token: str = ""
    broadcaster_refresh_token: str = ""
    config_dir: str = "./config"

    @model_validator(mode="after")
    def default_moderator(self) -> BotSettings:
        if not self.moderator_user_id:
            self.moderator_user_id = self.broadcaster_id
        return self

    @model_validator(mode="after")
    def require_tokens(self) -> BotSettings:
        if not (self.bot_access_token or self.bot_refresh_token):
            raise ValueError("bot access or refresh token required")
        if not (self.broadcaster_access_token or self.broadcaster_refresh_token):
            raise ValueError("broadcaster access or refresh token required")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BotSettings:
        env = os.environ if environ is None else environ
        return cls(
            client_id=env.get("TWITCH_CLIENT_ID", ""),
            client_secret=env.get("TWITCH_CLIENT_SECRET", ""),
            broadcaster_id=env.get("TWITCH_BROADCASTER_ID", ""),
            bot_user_id=env.get("TWITCH_BOT_USER_ID", ""),
            moderator_user_id=env.get("TWITCH_MODERATOR_USER_ID", ""),
            bot_access_token=env.get("TWITCH_BOT_ACCESS_TOKEN", ""),
            bot_refresh_token=env.get("TWITCH_BOT_REFRESH_TOKEN", ""),
            broadcaster_access_token=env.get("TWITCH_BROADCASTER_ACCESS_TOKEN", ""),
            broadcaster_refresh_token=env.get("TWITCH_BROADCASTER_REFRESH_TOKEN", ""),
            config_dir=env.get("EVENTBOT_CONFIG_DIR", "./config"),
        )
