"""
Error types for the system recorder.

This module defines the RecorderError base class and its subclasses. Storage,
decoding and input failures are expressed with these types so that each
boundary (sampling tick, query, console prompt) can catch exactly the
category it is responsible for.
"""

from __future__ import annotations

from typing import Any


class RecorderError(Exception):
    """
    Base exception class for recorder errors.

    Attributes:
        error_code: Internal error code string (e.g., "storage_error",
            "decode_error", "invalid_input").
        message: Human-readable error message.
        details: Optional structured details (e.g., table name, raw input).

    Example:
        >>> raise RecorderError(
        ...     error_code="storage_error",
        ...     message="database is locked",
        ...     details={"table": "ram"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a RecorderError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class StorageError(RecorderError):
    """
    Error raised when the store rejects or fails a statement.

    Covers an unavailable or closed connection, constraint violations and
    I/O faults.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a StorageError."""
        super().__init__(error_code="storage_error", message=message, details=details)


class DecodeError(RecorderError):
    """
    Error raised when a storage row cannot be turned back into a record.

    Raised on column count or column type mismatches.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a DecodeError."""
        super().__init__(error_code="decode_error", message=message, details=details)


class InputError(RecorderError):
    """
    Error raised for unusable interactive input.

    Always handled at the console boundary by re-prompting.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InputError."""
        super().__init__(error_code="invalid_input", message=message, details=details)
