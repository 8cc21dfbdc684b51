"""
Error types for the announcement store.

This module defines the closed set of failures the announcement service
can report:
- AnnouncementError: Base exception, carries an ErrorKind
- InvalidIndexTypeError / NegativeIndexError: Index validation failures
- IndexNotFoundError: Index beyond the current list
- CapacityExceededError: Version already holds `capacity` announcements
- AttachmentError: Attachment cannot be serialized
- InvalidTextError: Announcement text is not encodable as UTF-8
- StoreError / StoreConnectionError: Backing store failures

Invariants:
    - All errors inherit from AnnouncementError
    - Every error has exactly one ErrorKind
    - Validation errors are raised before any store call
    - Store errors chain the backend exception via __cause__

How to change safely:
    - Adding a kind means adding it to the HTTP status mapping too
    - Never reuse a kind value for a different meaning
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Enumerated failure kinds callers can branch on."""

    INVALID_INDEX_TYPE = "INVALID_INDEX_TYPE"
    NEGATIVE_INDEX = "NEGATIVE_INDEX"
    INDEX_NOT_FOUND = "INDEX_NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    INVALID_ATTACHMENT = "INVALID_ATTACHMENT"
    INVALID_TEXT = "INVALID_TEXT"
    STORE_FAILURE = "STORE_FAILURE"

    @property
    def is_validation(self) -> bool:
        """Whether the kind is an input validation failure."""
        return self in (
            ErrorKind.INVALID_INDEX_TYPE,
            ErrorKind.NEGATIVE_INDEX,
            ErrorKind.INVALID_ATTACHMENT,
            ErrorKind.INVALID_TEXT,
        )


class AnnouncementError(Exception):
    """Base exception for all announcement store errors.

    Attributes:
        message: Error message
        kind: Failure kind
        details: Structured context (offending index, capacity, ...)
    """

    kind: ErrorKind = ErrorKind.STORE_FAILURE

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.details = details or {}

    @property
    def code(self) -> str:
        """Stable string code for the error kind."""
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class InvalidIndexTypeError(AnnouncementError):
    """Index is not an integer (or a string holding one)."""

    kind = ErrorKind.INVALID_INDEX_TYPE

    def __init__(self, index: Any) -> None:
        super().__init__(
            f"index must be an integer, got {index!r}",
            details={"index": repr(index)},
        )
        self.index = index


class NegativeIndexError(AnnouncementError):
    """Index is lower than zero."""

    kind = ErrorKind.NEGATIVE_INDEX

    def __init__(self, index: int) -> None:
        super().__init__(
            f"index can not be lower than 0, got {index}",
            details={"index": index},
        )
        self.index = index


class IndexNotFoundError(AnnouncementError):
    """No announcement at the requested index in the current version."""

    kind = ErrorKind.INDEX_NOT_FOUND

    def __init__(self, index: int, length: int) -> None:
        super().__init__(
            f"can not find announcement at index {index} (version holds {length})",
            details={"index": index, "length": length},
        )
        self.index = index
        self.length = length


class CapacityExceededError(AnnouncementError):
    """The current version already holds `capacity` announcements."""

    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, capacity: int, version: str | None = None) -> None:
        super().__init__(
            f"announcement count can not be higher than {capacity}",
            details={"capacity": capacity, "version": version},
        )
        self.capacity = capacity
        self.version = version


class AttachmentError(AnnouncementError):
    """Attachment could not be encoded for storage."""

    kind = ErrorKind.INVALID_ATTACHMENT


class InvalidTextError(AnnouncementError):
    """Announcement text cannot be stored as UTF-8 (e.g. a lone surrogate)."""

    kind = ErrorKind.INVALID_TEXT


class StoreError(AnnouncementError):
    """Backing key-value store failure.

    Raised for any error reported by the store backend and for corrupt
    persisted data. The backend exception is available as __cause__.
    """

    kind = ErrorKind.STORE_FAILURE


class StoreConnectionError(StoreError):
    """Store is not connected or the connection failed."""
