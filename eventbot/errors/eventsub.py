"""EventSub error hierarchy for the protocol session.

All exceptions carry optional context (operation type, HTTP status and
response body) so callers can log them without re-parsing messages.
"""

from __future__ import annotations


class EventSubError(Exception):
    """Base exception for all EventSub-related errors.

    Args:
        message (str): Error message.
        operation_type (str | None): Operation that failed (e.g. 'connect', 'subscribe').
        status (int | None): HTTP status code, when the error came from the Helix API.
        body (str | None): Raw response body, when available.

    Example:
        >>> raise EventSubError("Generic error", operation_type="connect")
    """

    def __init__(
        self,
        message: str,
        *,
        operation_type: str | None = None,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation_type = operation_type
        self.status = status
        self.body = body


class EventSubConnectionError(EventSubError):
    """Raised when the WebSocket transport cannot be opened."""


class NoSessionError(EventSubError):
    """Raised when no session_welcome arrived before the handshake timeout.

    Subscriptions can only be registered against a session id, so this aborts
    the whole subscription sequence for the call.
    """


class SubscriptionCreateError(EventSubError):
    """Raised when the subscription-creation call returns a non-2xx status.

    Example:
        >>> raise SubscriptionCreateError("channel.follow rejected", status=403, body="{}")
    """


class DecodeError(EventSubError):
    """Raised for a malformed frame. Always recovered inside the receive loop."""
