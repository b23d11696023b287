"""Channel event announcements."""

from .announcer import EventAnnouncer, tier_label

__all__ = ["EventAnnouncer", "tier_label"]
