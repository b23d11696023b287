"""Typed EventSub notification variants and their decoders.

Each notification type decodes into one frozen dataclass. Every field is
extracted independently: a missing or mistyped field yields its zero value
instead of failing the whole event.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

CHAT_MESSAGE = "channel.chat.message"
FOLLOW = "channel.follow"
SUBSCRIBE = "channel.subscribe"
SUBSCRIPTION_MESSAGE = "channel.subscription.message"
SUBSCRIPTION_GIFT = "channel.subscription.gift"
REDEMPTION = "channel.channel_points_custom_reward_redemption.add"
CHEER = "channel.cheer"
RAID = "channel.raid"


def _get(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _str(obj: Any, *path: str) -> str:
    value = _get(obj, *path)
    if isinstance(value, str):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return ""


def _opt_str(obj: Any, *path: str) -> str | None:
    return _str(obj, *path) or None


def _int(obj: Any, *path: str) -> int:
    value = _get(obj, *path)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _bool(obj: Any, *path: str) -> bool:
    value = _get(obj, *path)
    return value if isinstance(value, bool) else False


@dataclass(frozen=True, slots=True)
class ChatMessage:
    broadcaster_user_id: str
    chatter_user_id: str
    chatter_user_login: str
    chatter_user_name: str
    text: str
    message_id: str | None = None
    reply_parent_message_id: str | None = None
    is_broadcaster: bool = False
    is_moderator: bool = False
    is_vip: bool = False
    is_subscriber: bool = False

    @property
    def chatter_label(self) -> str:
        return self.chatter_user_name or self.chatter_user_login or "you"


@dataclass(frozen=True, slots=True)
class Follow:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    followed_at: str = ""

    @property
    def name_or_login(self) -> str:
        return self.user_name or self.user_login or "(someone)"


@dataclass(frozen=True, slots=True)
class Subscribe:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    tier: str = ""
    is_gift: bool = False


@dataclass(frozen=True, slots=True)
class SubscriptionMessage:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    tier: str = ""
    cumulative_months: int = 0
    streak_months: int = 0
    duration_months: int = 0
    message: str = ""


@dataclass(frozen=True, slots=True)
class SubscriptionGift:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    tier: str = ""
    total: int = 0
    is_anonymous: bool = False


@dataclass(frozen=True, slots=True)
class Redemption:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    reward_id: str = ""
    reward_title: str = ""
    reward_cost: int = 0
    user_input: str = ""


@dataclass(frozen=True, slots=True)
class Cheer:
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    bits: int = 0
    is_anonymous: bool = False
    message: str = ""


@dataclass(frozen=True, slots=True)
class Raid:
    broadcaster_user_id: str
    from_broadcaster_user_id: str
    from_broadcaster_user_login: str
    from_broadcaster_user_name: str
    viewers: int = 0


InboundEvent = (
    ChatMessage
    | Follow
    | Subscribe
    | SubscriptionMessage
    | SubscriptionGift
    | Redemption
    | Cheer
    | Raid
)


def decode_chat_message(ev: dict[str, Any]) -> ChatMessage:
    is_broadcaster = is_moderator = is_vip = is_subscriber = False
    badges = ev.get("badges")
    if isinstance(badges, list):
        for badge in badges:
            match _str(badge, "set_id"):
                case "broadcaster":
                    is_broadcaster = True
                case "moderator":
                    is_moderator = True
                case "vip":
                    is_vip = True
                case "subscriber":
                    is_subscriber = True
    return ChatMessage(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        chatter_user_id=_str(ev, "chatter_user_id"),
        chatter_user_login=_str(ev, "chatter_user_login"),
        chatter_user_name=_str(ev, "chatter_user_name"),
        text=_str(ev, "message", "text"),
        message_id=_opt_str(ev, "message_id") or _opt_str(ev, "message", "id"),
        reply_parent_message_id=_opt_str(ev, "reply", "parent_message_id"),
        is_broadcaster=is_broadcaster,
        is_moderator=is_moderator,
        is_vip=is_vip,
        is_subscriber=is_subscriber,
    )


def decode_follow(ev: dict[str, Any]) -> Follow:
    return Follow(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        followed_at=_str(ev, "followed_at"),
    )


def decode_subscribe(ev: dict[str, Any]) -> Subscribe:
    return Subscribe(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        tier=_str(ev, "tier"),
        is_gift=_bool(ev, "is_gift"),
    )


def decode_subscription_message(ev: dict[str, Any]) -> SubscriptionMessage:
    return SubscriptionMessage(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        tier=_str(ev, "tier"),
        cumulative_months=_int(ev, "cumulative_months"),
        streak_months=_int(ev, "streak_months"),
        duration_months=_int(ev, "duration_months"),
        message=_str(ev, "message", "text"),
    )


def decode_subscription_gift(ev: dict[str, Any]) -> SubscriptionGift:
    return SubscriptionGift(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        tier=_str(ev, "tier"),
        total=_int(ev, "total"),
        is_anonymous=_bool(ev, "is_anonymous"),
    )


def decode_redemption(ev: dict[str, Any]) -> Redemption:
    return Redemption(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        reward_id=_str(ev, "reward", "id"),
        reward_title=_str(ev, "reward", "title"),
        reward_cost=_int(ev, "reward", "cost"),
        user_input=_str(ev, "user_input"),
    )


def decode_cheer(ev: dict[str, Any]) -> Cheer:
    return Cheer(
        broadcaster_user_id=_str(ev, "broadcaster_user_id"),
        user_id=_str(ev, "user_id"),
        user_login=_str(ev, "user_login"),
        user_name=_str(ev, "user_name"),
        bits=_int(ev, "bits"),
        is_anonymous=_bool(ev, "is_anonymous"),
        message=_str(ev, "message"),
    )


def decode_raid(ev: dict[str, Any]) -> Raid:
    return Raid(
        broadcaster_user_id=_str(ev, "to_broadcaster_user_id"),
        from_broadcaster_user_id=_str(ev, "from_broadcaster_user_id"),
        from_broadcaster_user_login=_str(ev, "from_broadcaster_user_login"),
        from_broadcaster_user_name=_str(ev, "from_broadcaster_user_name"),
        viewers=_int(ev, "viewers"),
    )


DECODERS: dict[str, Callable[[dict[str, Any]], InboundEvent]] = {
    CHAT_MESSAGE: decode_chat_message,
    FOLLOW: decode_follow,
    SUBSCRIBE: decode_subscribe,
    SUBSCRIPTION_MESSAGE: decode_subscription_message,
    SUBSCRIPTION_GIFT: decode_subscription_gift,
    REDEMPTION: decode_redemption,
    CHEER: decode_cheer,
    RAID: decode_raid,
}


def decode_event(subscription_type: str, event: Any) -> InboundEvent | None:
    """Decode a notification's ``event`` object; None for unknown types."""
    decoder = DECODERS.get(subscription_type)
    if decoder is None:
        return None
    return decoder(event if isinstance(event, dict) else {})
