"""General utility helper functions."""

from __future__ import annotations

from collections.abc import Mapping

__all__ = ["format_duration", "format_uptime", "mask_id", "render_template"]


def format_duration(total_seconds: int | float | None) -> str:
    """Return a human-friendly Hh Mm Ss string for a duration in seconds.

    Examples:
      65 -> "1m 5s"
      3605 -> "1h 0m 5s"
      59 -> "59s"
    """
    if total_seconds is None:
        return "unknown"
    seconds = int(total_seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {sec}s"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m {sec}s"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h {minutes}m {sec}s"


def format_uptime(total_seconds: int | float) -> str:
    """Return HH:MM:SS where hours are not wrapped at 24 (e.g. 26:03:09)."""
    seconds = max(0, int(total_seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, sec = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{sec:02d}"


def render_template(template: str, values: Mapping[str, object]) -> str:
    """Substitute ``{name}`` placeholders by plain string replacement.

    Dotted names like ``{user.name}`` are supported. Unknown placeholders are
    left untouched so a typo in a config template stays visible.
    """
    text = template
    for key, value in values.items():
        text = text.replace("{" + key + "}", "" if value is None else str(value))
    return text


def mask_id(value: str) -> str:
    """Mask all but the last four characters of an identifier for logs."""
    if not value or len(value) <= 4:
        return value
    return "*" * (len(value) - 4) + value[-4:]
