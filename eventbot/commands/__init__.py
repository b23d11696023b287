"""Chat command dispatching and handlers."""

from .dispatcher import CommandDispatcher
from .handlers import CommandContext, CommandHandlers, calendar_age, sanitize, static_handler
from .permissions import has_permission, role_of

__all__ = [
    "CommandContext",
    "CommandDispatcher",
    "CommandHandlers",
    "calendar_age",
    "has_permission",
    "role_of",
    "sanitize",
    "static_handler",
]
