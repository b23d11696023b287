"""EventSub protocol client: session, subscriptions and typed events."""

from .events import (
    ChatMessage,
    Cheer,
    Follow,
    InboundEvent,
    Raid,
    Redemption,
    Subscribe,
    SubscriptionGift,
    SubscriptionMessage,
    decode_event,
)
from .session import ProtocolSession
from .subscriptions import SubscriptionSpec, bot_subscriptions, broadcaster_subscriptions

__all__ = [
    "ChatMessage",
    "Cheer",
    "Follow",
    "InboundEvent",
    "ProtocolSession",
    "Raid",
    "Redemption",
    "Subscribe",
    "SubscriptionGift",
    "SubscriptionMessage",
    "SubscriptionSpec",
    "bot_subscriptions",
    "broadcaster_subscriptions",
    "decode_event",
]
