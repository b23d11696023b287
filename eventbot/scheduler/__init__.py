"""Autonomous announcement scheduling."""

from .announcements import AnnouncementScheduler, in_quiet_hours, pick_message_index

__all__ = ["AnnouncementScheduler", "in_quiet_hours", "pick_message_index"]
