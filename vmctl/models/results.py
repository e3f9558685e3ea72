"""
Result Models

Dataclass models for command outputs and validation outcomes.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ExecutionResult:
    """Result of one command invocation (local shell or remote session)."""

    returncode: int
    output: str = ""
    command: str = ""
    duration_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if execution succeeded."""
        return self.returncode == 0

    @property
    def is_failure(self) -> bool:
        """Check if execution failed."""
        return self.returncode != 0

    @property
    def text(self) -> str:
        """Output with surrounding whitespace and trailing newlines removed."""
        return self.output.strip()

    def __repr__(self) -> str:
        return f"ExecutionResult(returncode={self.returncode}, command='{self.command[:50]}...')"


@dataclass
class ValidationResult:
    """
    Result of a validation check.

    Invalid results always carry a non-empty error. Warnings never affect
    validity and may be present either way.
    """

    is_valid: bool = True
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, warnings: Optional[list[str]] = None) -> "ValidationResult":
        return cls(is_valid=True, warnings=list(warnings or []))

    @classmethod
    def invalid(cls, error: str) -> "ValidationResult":
        if not error:
            raise ValueError("An invalid result needs an error message")
        return cls(is_valid=False, error=error)

    @property
    def has_warnings(self) -> bool:
        """Check if validation has warnings."""
        return len(self.warnings) > 0

    def fail(self, error: str) -> "ValidationResult":
        """Mark the result invalid with the given error."""
        if not error:
            raise ValueError("An invalid result needs an error message")
        self.is_valid = False
        self.error = error
        return self

    def add_warning(self, warning: str) -> None:
        """Add a warning to the validation result."""
        self.warnings.append(warning)

    def absorb(self, other: "ValidationResult") -> bool:
        """
        Merge a sub-check into this result.

        Warnings are always carried over; an invalid sub-check makes this
        result invalid with the sub-check's error.

        Returns:
            True if the sub-check was valid
        """
        self.warnings.extend(other.warnings)
        if not other.is_valid:
            self.is_valid = False
            self.error = other.error
            return False
        return True

    def to_dict(self) -> dict:
        return {"valid": self.is_valid, "error": self.error, "warnings": list(self.warnings)}

    def __repr__(self) -> str:
        return f"ValidationResult(valid={self.is_valid}, warnings={len(self.warnings)})"
