"""Outbound collaborators: Helix client and the protocols the core consumes."""

from .protocols import (
    ChannelInfo,
    ChatAPI,
    GameInfo,
    Quote,
    QuoteStore,
    StreamInfo,
    TokenProvider,
    UserIdentity,
)
from .twitch import HelixChatAPI, TwitchAPI

__all__ = [
    "ChannelInfo",
    "ChatAPI",
    "GameInfo",
    "HelixChatAPI",
    "Quote",
    "QuoteStore",
    "StreamInfo",
    "TokenProvider",
    "TwitchAPI",
    "UserIdentity",
]
