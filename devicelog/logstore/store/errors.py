"""
Error types for the log store.

This module defines all exception types raised by the storage core:
- LogStoreError: Base exception
- StorageError: Backing file cannot be created, opened, read or written
- MalformedRowError: Persisted row cannot be decoded (strict mode only)
- EntryValidationError: Submitted entry is missing required fields

Invariants:
    - All errors inherit from LogStoreError
    - StorageError always wraps the originating OSError as __cause__
    - Errors are never retried inside the store

How to change safely:
    - Keep error codes stable, the HTTP layer exposes them
    - Add new error kinds as subclasses of LogStoreError
"""

from __future__ import annotations

from typing import Any


class LogStoreError(Exception):
    """Base exception for all log store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LOGSTORE_ERROR"
        self.details = details or {}


class StorageError(LogStoreError):
    """The backing file is unavailable.

    Raised when:
    - The file or its directory cannot be created
    - The file cannot be opened or read
    - A write or flush fails (permissions, disk full)
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="STORAGE_UNAVAILABLE",
            details={"path": path, "operation": operation},
        )
        self.path = path
        self.operation = operation


class MalformedRowError(LogStoreError):
    """A persisted row could not be decoded.

    Only raised when the store runs in strict parse mode. In lenient
    mode malformed rows are skipped or defaulted instead.
    """

    def __init__(
        self,
        message: str,
        line_number: int | None = None,
        row: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="MALFORMED_ROW",
            details={"line_number": line_number, "row": row},
        )
        self.line_number = line_number
        self.row = row


class EntryValidationError(LogStoreError):
    """Submitted entry failed validation."""

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name
