"""Reactive Twitch EventSub chat bot: commands, event announcements and timed messages."""

__version__ = "1.0.0"
