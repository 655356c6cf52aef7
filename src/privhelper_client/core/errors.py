"""Typed application errors with user-facing messages."""

from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class TransportUnavailableError(AppError):
    """The helper's control surface could not be reached."""


class HelperMissingError(TransportUnavailableError):
    pass


class ServiceCommandError(TransportUnavailableError):
    def __init__(self, command: str, detail: str, user_message: str | None = None) -> None:
        super().__init__(f"Command failed: {command}: {detail}", user_message=user_message or detail)
        self.command = command
        self.detail = detail


class OperationFailedError(AppError):
    """The transport reported a definite error for a mutating call."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"{operation} failed: {reason}", user_message=reason)
        self.operation = operation
        self.reason = reason


class OperationTimedOut(AppError):
    """The deadline passed before the operation settled; its outcome is unknown."""

    def __init__(self, label: str, timeout_s: float) -> None:
        super().__init__(
            f"{label} did not finish within {timeout_s:g}s",
            user_message="Operation timed out, it may be waiting for UAC/permission prompt",
        )
        self.label = label
        self.timeout_s = timeout_s
