"""EventSub subscription definitions per credential identity.

Subscriptions are created once per connect cycle, in the order returned
here. The remote service does not guarantee idempotent creation, so callers
must not replay a list against the same session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from . import events


@dataclass(frozen=True, slots=True)
class SubscriptionSpec:
    type: str
    version: str
    condition: dict[str, str] = field(default_factory=dict)

    def to_body(self, session_id: str) -> dict[str, Any]:
        """Request body for the Create EventSub Subscription call."""
        return {
            "type": self.type,
            "version": self.version,
            "condition": dict(self.condition),
            "transport": {"method": "websocket", "session_id": session_id},
        }


def bot_subscriptions(
    broadcaster_id: str, bot_user_id: str, moderator_id: str | None = None
) -> list[SubscriptionSpec]:
    """Chat and follows, registered with the bot user's token."""
    return [
        SubscriptionSpec(
            events.CHAT_MESSAGE,
            "1",
            {"broadcaster_user_id": broadcaster_id, "user_id": bot_user_id},
        ),
        SubscriptionSpec(
            events.FOLLOW,
            "2",
            {
                "broadcaster_user_id": broadcaster_id,
                "moderator_user_id": moderator_id or broadcaster_id,
            },
        ),
    ]


def broadcaster_subscriptions(broadcaster_id: str) -> list[SubscriptionSpec]:
    """Subs, redemptions, cheers and raids, registered with the broadcaster's token."""
    channel = {"broadcaster_user_id": broadcaster_id}
    return [
        SubscriptionSpec(events.SUBSCRIBE, "1", channel),
        SubscriptionSpec(events.SUBSCRIPTION_MESSAGE, "1", channel),
        SubscriptionSpec(events.SUBSCRIPTION_GIFT, "1", channel),
        SubscriptionSpec(events.REDEMPTION, "1", channel),
        SubscriptionSpec(events.CHEER, "1", channel),
        SubscriptionSpec(events.RAID, "1", {"to_broadcaster_user_id": broadcaster_id}),
    ]
