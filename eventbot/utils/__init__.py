"""Utility helpers shared across the bot."""

from .helpers import format_duration, format_uptime, mask_id, render_template
from .tasks import BackgroundTasks

__all__ = [
    "BackgroundTasks",
    "format_duration",
    "format_uptime",
    "mask_id",
    "render_template",
]
