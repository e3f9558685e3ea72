"""
vmctl Exception Hierarchy

Clean exception hierarchy for consistent error handling across services and CLI.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Category of a failure, reported alongside every workflow error."""

    CONNECTIVITY = "connectivity"
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    EXECUTION = "execution"
    NOT_FOUND = "not_found"
    QUOTA = "quota"


class VmctlError(Exception):
    """Base exception for all vmctl errors."""

    kind = ErrorKind.EXECUTION

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(VmctlError):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.VALIDATION


class ConnectivityError(VmctlError):
    """Raised when the hypervisor endpoint or remote host cannot be reached."""

    kind = ErrorKind.CONNECTIVITY


class ValidationError(VmctlError):
    """Raised when input is malformed or out of range."""

    kind = ErrorKind.VALIDATION


class PreconditionError(VmctlError):
    """Raised when the target host lacks a tool, directory, image, space or network."""

    kind = ErrorKind.PRECONDITION


class ExecutionError(VmctlError):
    """Raised when an external command or hypervisor call fails."""

    kind = ErrorKind.EXECUTION


class QuotaExceededError(VmctlError):
    """Raised when an allocation would exceed a user's quota."""

    kind = ErrorKind.QUOTA


class RegistryError(VmctlError):
    """Raised when the user registry cannot be read or written."""

    pass


class NotFoundError(VmctlError):
    """Raised when a referenced object does not exist."""

    kind = ErrorKind.NOT_FOUND


class InstanceNotFoundError(NotFoundError):
    """Raised when an instance does not exist."""

    def __init__(self, name: str, detail: Optional[str] = None):
        self.name = name
        super().__init__(f"VM '{name}' not found", context=detail)


class SnapshotNotFoundError(NotFoundError):
    """Raised when a snapshot does not exist."""

    def __init__(self, instance: str, snapshot: str):
        self.instance = instance
        self.snapshot = snapshot
        super().__init__(f"Snapshot '{snapshot}' not found on VM '{instance}'")


class UserNotFoundError(NotFoundError):
    """Raised when a user is not in the registry."""

    def __init__(self, username: str, available_users: Optional[list[str]] = None):
        self.username = username
        self.available_users = available_users or []
        context = None
        if self.available_users:
            context = f"Available users: {', '.join(self.available_users)}"
        super().__init__(f"User '{username}' not found", context=context)


class UserExistsError(ValidationError):
    """Raised when registering a username that is already taken."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"User '{username}' already exists")
