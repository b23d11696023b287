"""Role checks for chat commands."""

from __future__ import annotations

from ..chat.events import ChatMessage
from ..config.model import Permission


def role_of(msg: ChatMessage) -> Permission:
    """Highest tier the chatter holds; badges may co-occur, the top one wins."""
    if msg.is_broadcaster:
        return Permission.BROADCASTER
    if msg.is_moderator:
        return Permission.MOD
    if msg.is_vip:
        return Permission.VIP
    if msg.is_subscriber:
        return Permission.SUBSCRIBER
    return Permission.EVERYONE


def has_permission(required: Permission, msg: ChatMessage) -> bool:
    """Check if the chatter meets the minimum tier."""
    return role_of(msg) >= required


def is_mod_or_broadcaster(msg: ChatMessage) -> bool:
    return msg.is_moderator or msg.is_broadcaster
