"""Custom exception hierarchy for recordQL.

All public errors inherit from RecordQLError so callers can catch the base
class for any recordQL-specific failure.
"""
from __future__ import annotations

from typing import Any


class RecordQLError(Exception):
    """Base exception for all recordQL errors."""


class ConfigurationError(RecordQLError):
    """Raised when database or library configuration is used incorrectly.

    Args:
        message: Human-readable description.
        setting: The setting or lifecycle step at fault, if any.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(message)
        self.setting = setting


class EntityDefinitionError(RecordQLError):
    """Raised when a Record subclass declares an invalid field/column mapping.

    Detected when the class is created, before any query is built, so a
    bad declaration fails at import time rather than as broken SQL later.

    Args:
        record: Name of the offending Record class.
        message: Human-readable description.
    """

    def __init__(self, record: str, message: str) -> None:
        super().__init__(f"{record}: {message}")
        self.record = record


class InvalidClauseError(RecordQLError):
    """Raised in strict mode when a builder call cannot produce a clause.

    Outside strict mode the same conditions are logged and skipped.  Invalid
    computed columns on a join always raise.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``INVALID_VALUE``).
        details: Extra context about the rejected call.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response for API layers."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class ColumnResolutionError(InvalidClauseError):
    """Raised when a field or ``table<N>.field`` reference cannot be resolved."""

    def __init__(self, reference: str, known: list[str] | None = None) -> None:
        super().__init__(
            f"Cannot resolve column reference '{reference}'.",
            code="UNKNOWN_COLUMN",
            details={"reference": reference, "known": known or []},
        )
        self.reference = reference


class ExecutionError(RecordQLError):
    """Raised when the execution collaborator fails to run a statement.

    The driver exception is always chained as ``__cause__``.

    Args:
        message: Human-readable description.
        statement: The SQL text that failed.
    """

    def __init__(self, message: str, statement: str | None = None) -> None:
        super().__init__(message)
        self.statement = statement
