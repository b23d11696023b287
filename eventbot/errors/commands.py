"""Command dispatcher gate outcomes and handler failures.

Gate rejections are control flow, never user-visible: the dispatcher logs
them and stays silent in chat.
"""

from __future__ import annotations


class GateRejection(Exception):
    """Base class for a command invocation rejected by a policy gate."""

    def __init__(self, command: str, user_id: str, reason: str) -> None:
        super().__init__(f"{reason} for command '{command}' (user={user_id})")
        self.command = command
        self.user_id = user_id


class PermissionDenied(GateRejection):
    def __init__(self, command: str, user_id: str, required: str) -> None:
        super().__init__(command, user_id, f"Permission denied (requires {required})")
        self.required = required


class CooldownActive(GateRejection):
    def __init__(self, command: str, user_id: str, scope: str, remaining: float) -> None:
        super().__init__(
            command, user_id, f"{scope.capitalize()} cooldown active ({remaining:.1f}s left)"
        )
        self.scope = scope
        self.remaining = remaining


class UsageExhausted(GateRejection):
    def __init__(self, command: str, user_id: str, scope: str, cap: int) -> None:
        super().__init__(command, user_id, f"{scope.capitalize()} usage cap {cap} reached")
        self.scope = scope
        self.cap = cap


class HandlerError(Exception):
    """Raised (and caught by the dispatcher) when a command handler throws."""

    def __init__(self, command: str, cause: BaseException) -> None:
        super().__init__(f"Handler for '{command}' failed: {type(cause).__name__}: {cause}")
        self.command = command
        self.cause = cause
