"""Error hierarchy for the EventSub client, command gates and outbound calls."""

from .commands import (
    CooldownActive,
    GateRejection,
    HandlerError,
    PermissionDenied,
    UsageExhausted,
)
from .eventsub import (
    DecodeError,
    EventSubConnectionError,
    EventSubError,
    NoSessionError,
    SubscriptionCreateError,
)
from .internal import InternalError, NetworkError, OAuthError, RateLimitError

__all__ = [
    "CooldownActive",
    "DecodeError",
    "EventSubConnectionError",
    "EventSubError",
    "GateRejection",
    "HandlerError",
    "InternalError",
    "NetworkError",
    "NoSessionError",
    "OAuthError",
    "PermissionDenied",
    "RateLimitError",
    "SubscriptionCreateError",
    "UsageExhausted",
]
