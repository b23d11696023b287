"""Internal error hierarchy for outbound calls.

These exceptions give semantic categories to failures of the Helix client
and the token providers. Raw aiohttp / JSON errors are wrapped into them at
the network boundary.

Classes:
  InternalError        – Base for all internal errors.
  NetworkError         – Transient network/IO issues.
  OAuthError           – Authentication / authorization related failures.
  RateLimitError       – Explicit rate limiting signalled by the remote service.
"""

from __future__ import annotations

from collections.abc import Mapping


class InternalError(Exception):
    """Base class for all internal application errors with metadata support.

    Attributes:
        data: Dictionary containing arbitrary structured context data.

    Args:
        message: Descriptive error message.
        data: Optional mapping of additional context data.
    """

    data: dict[str, object]

    def __init__(
        self, message: str, *, data: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(message)
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.data = dict(data) if data else {}


class NetworkError(InternalError):
    """Connection timeouts, resets and other transport failures."""


class OAuthError(InternalError):
    """Credential, token or permission failures."""


class RateLimitError(InternalError):
    """The remote service answered 429.

    Args:
        message: Optional error message, defaults to "Rate limited".
        remaining: Remaining request budget reported by the service, if any.
    """

    def __init__(self, message: str = "Rate limited", *, remaining: int | None = None):
        super().__init__(message, data={"remaining": remaining})


__all__ = [
    "InternalError",
    "NetworkError",
    "OAuthError",
    "RateLimitError",
]
