"""
Configuration constants for the EventSub chat bot

This module contains all configurable constants used throughout the application.
Each constant can be overridden by setting an environment variable with the same name.
"""

import os


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Attempts to parse the environment variable as an integer. If the variable
    is not set or cannot be parsed, prints a warning and returns the default value.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            print(
                f"Warning: Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            print(
                f"Warning: Invalid float value for {name}='{value}', using default {default}"
            )
    return default


# EventSub transport
EVENTSUB_WS_URL = os.getenv("EVENTSUB_WS_URL", "wss://eventsub.wss.twitch.tv/ws")
EVENTSUB_SUBSCRIPTIONS_ENDPOINT = "eventsub/subscriptions"
EVENTSUB_WELCOME_TIMEOUT_SECONDS = _get_env_float(
    "EVENTSUB_WELCOME_TIMEOUT_SECONDS", 10.0
)  # Max wait for session_welcome before subscribing
EVENTSUB_SHUTDOWN_WAIT_SECONDS = _get_env_float(
    "EVENTSUB_SHUTDOWN_WAIT_SECONDS", 0.5
)  # Grace period for the receive loop to exit on close

# Command dispatcher
STREAM_CONTEXT_REFRESH_SECONDS = _get_env_float(
    "STREAM_CONTEXT_REFRESH_SECONDS", 60.0
)  # Minimum wall-clock gap between live-stream identity checks

# Announcer
EVENTS_MIN_RATE_LIMIT_SECONDS = 0.2  # Floor for the cross-category send gap

# Announcement scheduler
ANNOUNCEMENTS_TICK_SECONDS = _get_env_float("ANNOUNCEMENTS_TICK_SECONDS", 30.0)
ANNOUNCEMENTS_MIN_GAP_FLOOR_MINUTES = 0.1  # Floor for global/per-message gaps
ANNOUNCEMENTS_MIN_NO_CHAT_MINUTES = 1.0  # Floor for the activity window

# Token refresh
TOKEN_REFRESH_MARGIN_SECONDS = _get_env_int(
    "TOKEN_REFRESH_MARGIN_SECONDS", 300
)  # Refresh when fewer than this many seconds remain
TOKEN_REFRESH_MAX_ATTEMPTS = _get_env_int("TOKEN_REFRESH_MAX_ATTEMPTS", 3)

# Local time for !time, !xmas
DEFAULT_TIMEZONE = os.getenv("EVENTBOT_TZ", "Europe/London")

# Config files inside the config directory
COMMANDS_FILE = "commands.json"
EVENTS_FILE = "events.json"
ANNOUNCEMENTS_FILE = "announcements.json"
MODTOOLS_FILE = "modtools.json"
