"""Configuration models, file providers and the hot-reload watcher."""

from .model import (
    AnnouncementMessage,
    AnnouncementsConfig,
    BotSettings,
    CommandDef,
    CommandFile,
    EventsConfig,
    ModToolsConfig,
    Permission,
    QuietHoursConfig,
)
from .provider import JsonConfigProvider, validate_file
from .watcher import ConfigWatcher

__all__ = [
    "AnnouncementMessage",
    "AnnouncementsConfig",
    "BotSettings",
    "CommandDef",
    "CommandFile",
    "ConfigWatcher",
    "EventsConfig",
    "JsonConfigProvider",
    "ModToolsConfig",
    "Permission",
    "QuietHoursConfig",
    "validate_file",
]
