from __future__ import annotations

from ..logging_config import log_structured_error
from .commands import GateRejection, HandlerError
from .eventsub import EventSubError
from .internal import (
    InternalError,
    NetworkError,
    OAuthError,
    RateLimitError,
)


def classify_error(error: BaseException) -> str:
    """Map an exception onto the category used by the error aggregator."""
    if isinstance(error, NetworkError | OSError | ConnectionError | TimeoutError):
        return "network"
    if isinstance(error, OAuthError):
        return "auth"
    if isinstance(error, RateLimitError):
        return "ratelimit"
    if isinstance(error, EventSubError):
        return "eventsub"
    if isinstance(error, HandlerError | GateRejection):
        return "command"
    if isinstance(error, InternalError):
        return "internal"
    return "unknown"


def log_error(message: str, error: BaseException, context: dict | None = None) -> None:
    """Logs an error message with the associated exception details.

    Args:
        message: A descriptive message about the error context.
        error: The exception instance to be logged.
        context: Optional additional context data for debugging.
    """
    log_structured_error(
        error_type=classify_error(error),
        message=f"{message}: {str(error)}",
        exception=error,
        context=context,
    )
