"""
Persisted record types for the announcement store.

This module defines the values that live in the key-value store and how
they are encoded:

    registry key   -> "<versionKey>,<expireEpochSeconds>"
    versionKey     -> "<prefix><dateSign>_<sequence>"   e.g. ANNOUNCE:2026-10-19_2
    version list   -> one JSON object per announcement:
                      {"id", "title", "content", "attach", "isHide"}

Invariants:
    - Announcement ids are assigned once and never change
    - isHide is 0 (shown) or 1 (hidden)
    - The client version id is the version key without the prefix
    - Corrupt persisted data raises StoreError, it is never guessed around

How to change safely:
    - Add record fields with defaults; readers must ignore unknown fields
    - Never change the registry value separator, running servers parse it
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Protocol, runtime_checkable

from .errors import AttachmentError, InvalidTextError, StoreError

STATUS_SHOW = 0
STATUS_HIDE = 1

_REGISTRY_SEPARATOR = ","
_SEQUENCE_SEPARATOR = "_"


@runtime_checkable
class AttachmentCodec(Protocol):
    """Explicit serialization contract for announcement attachments.

    encode() must return a value json.dumps accepts; decode() receives
    exactly what json.loads produced from it.
    """

    def encode(self, value: Any) -> Any:
        ...

    def decode(self, data: Any) -> Any:
        ...


class JsonAttachmentCodec:
    """Default codec: attachments must already be JSON-compatible."""

    def encode(self, value: Any) -> Any:
        try:
            json.dumps(value, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise AttachmentError(
                f"attachment is not JSON serializable: {e}",
                details={"type": type(value).__name__},
            ) from e
        return value

    def decode(self, data: Any) -> Any:
        return data


@dataclass(frozen=True)
class VersionKey:
    """Store key naming one version list.

    Attributes:
        prefix: Fixed store prefix (e.g. "ANNOUNCE:")
        date_sign: Local calendar date the version was created on
        sequence: Rotation counter within that date, starting at 1
    """

    prefix: str
    date_sign: str
    sequence: int

    @classmethod
    def first(cls, prefix: str, day: date) -> VersionKey:
        """First version key of a calendar day."""
        return cls(prefix=prefix, date_sign=day.isoformat(), sequence=1)

    @classmethod
    def parse(cls, key: str, prefix: str) -> VersionKey:
        """Parse a stored version key.

        Raises:
            StoreError: If the key does not have the expected shape
        """
        if not key.startswith(prefix):
            raise StoreError(f"Version key {key!r} does not start with {prefix!r}")
        date_sign, sep, sequence = key[len(prefix):].rpartition(_SEQUENCE_SEPARATOR)
        if not sep or not date_sign or not sequence.isdigit() or int(sequence) < 1:
            raise StoreError(f"Malformed version key {key!r}")
        return cls(prefix=prefix, date_sign=date_sign, sequence=int(sequence))

    def successor(self, day: date) -> VersionKey:
        """Key of the version replacing this one on the given day.

        Same day increments the sequence; a new day restarts at 1.
        """
        if self.date_sign == day.isoformat():
            return replace(self, sequence=self.sequence + 1)
        return VersionKey.first(self.prefix, day)

    @property
    def client_id(self) -> str:
        """Version id safe to expose to callers (no store prefix)."""
        return f"{self.date_sign}{_SEQUENCE_SEPARATOR}{self.sequence}"

    def __str__(self) -> str:
        return f"{self.prefix}{self.client_id}"


@dataclass(frozen=True)
class RegistryEntry:
    """The current-version pointer and its expiry, stored as one value.

    Attributes:
        version_key: Key of the current version list
        expire_at: Absolute expiry, Unix epoch seconds
    """

    version_key: VersionKey
    expire_at: int

    @property
    def version(self) -> str:
        """Client version id."""
        return self.version_key.client_id

    def encode(self) -> str:
        return f"{self.version_key}{_REGISTRY_SEPARATOR}{self.expire_at}"

    @classmethod
    def decode(cls, raw: str, prefix: str) -> RegistryEntry:
        """Parse the stored registry value.

        Raises:
            StoreError: If the value is malformed
        """
        key, sep, expire = raw.rpartition(_REGISTRY_SEPARATOR)
        if not sep:
            raise StoreError(f"Malformed registry value {raw!r}")
        try:
            expire_at = int(expire)
        except ValueError as e:
            raise StoreError(f"Malformed expiry in registry value {raw!r}") from e
        return cls(version_key=VersionKey.parse(key, prefix), expire_at=expire_at)


@dataclass(frozen=True)
class Announcement:
    """One broadcast announcement.

    Attributes:
        id: Time-ordered unique id (UUID1 string)
        title: Title text
        content: Body text
        attach: Optional opaque attachment (see AttachmentCodec)
        hidden: Whether the announcement is hidden from end users
    """

    id: str
    title: str
    content: str
    attach: Any = None
    hidden: bool = False

    def hide(self) -> Announcement:
        """Hidden copy of this announcement."""
        return replace(self, hidden=True)

    def to_record(self, codec: AttachmentCodec) -> str:
        """Serialize to the stored JSON record.

        Raises:
            AttachmentError: If the attachment cannot be encoded
            InvalidTextError: If the record is not encodable as UTF-8
        """
        attach = codec.encode(self.attach) if self.attach is not None else None
        try:
            raw = json.dumps(
                {
                    "id": self.id,
                    "title": self.title,
                    "content": self.content,
                    "attach": attach,
                    "isHide": STATUS_HIDE if self.hidden else STATUS_SHOW,
                },
                ensure_ascii=False,
                separators=(",", ":"),
                allow_nan=False,
            )
        except (TypeError, ValueError) as e:
            raise AttachmentError(f"attachment codec produced non-JSON data: {e}") from e

        # Stored values must encode as strict UTF-8 (no lone surrogates).
        try:
            raw.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidTextError(
                f"announcement text is not valid UTF-8: {e.reason}",
                details={"position": e.start},
            ) from e
        return raw

    @classmethod
    def from_record(cls, raw: str, codec: AttachmentCodec) -> Announcement:
        """Parse a stored JSON record.

        Raises:
            StoreError: If the record is not valid
        """
        try:
            data = json.loads(raw)
            attach = data.get("attach")
            return cls(
                id=data["id"],
                title=data["title"],
                content=data["content"],
                attach=codec.decode(attach) if attach is not None else None,
                hidden=data.get("isHide", STATUS_SHOW) == STATUS_HIDE,
            )
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"Corrupt announcement record: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "attach": self.attach,
            "hidden": self.hidden,
        }
