"""Credential providers for Helix and EventSub calls."""

from .tokens import AppTokenProvider, StaticTokenProvider, UserTokenProvider

__all__ = ["AppTokenProvider", "StaticTokenProvider", "UserTokenProvider"]
