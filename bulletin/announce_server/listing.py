"""
Per-version announcement list.

Each version owns one store list, keyed by the version key, holding the
serialized announcements in insertion order. Appends and hides run as
optimistic transactions over the registry value and the list, so the
capacity check and the all-hidden check see the same data they write.

Invariants:
    - A list never holds more than `capacity` records
    - Hiding is idempotent: an already hidden entry is not rewritten
    - Hiding the last visible entry rotates the version instead of writing it

How to change safely:
    - Keep every read inside the transaction that writes based on it
    - Never write to a version list without watching the registry too
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import (
    CapacityExceededError,
    IndexNotFoundError,
    InvalidIndexTypeError,
    NegativeIndexError,
)
from .records import Announcement, AttachmentCodec, JsonAttachmentCodec, RegistryEntry
from .registry import VersionRegistry
from .store.base import Transaction

logger = logging.getLogger(__name__)


class HideOutcome(Enum):
    """What hide_at() did."""

    HIDDEN = "hidden"
    ALREADY_HIDDEN = "already_hidden"
    ROTATED = "rotated"


@dataclass(frozen=True)
class HideResult:
    """Result of hiding an announcement.

    Attributes:
        outcome: What happened
        entry: Registry entry current after the call
        previous: Superseded entry when the hide rotated the version
    """

    outcome: HideOutcome
    entry: RegistryEntry
    previous: RegistryEntry | None = None

    @property
    def rotated(self) -> bool:
        return self.outcome is HideOutcome.ROTATED


def coerce_index(index: Any) -> int:
    """Validate and convert a caller supplied index.

    Accepts ints, integral floats and strings holding a base-10 integer.

    Raises:
        InvalidIndexTypeError: If index is not an integer
        NegativeIndexError: If index is lower than 0
    """
    if isinstance(index, bool):
        raise InvalidIndexTypeError(index)
    if isinstance(index, int):
        value = index
    elif isinstance(index, float):
        if not index.is_integer():
            raise InvalidIndexTypeError(index)
        value = int(index)
    elif isinstance(index, str):
        try:
            value = int(index.strip(), 10)
        except ValueError:
            raise InvalidIndexTypeError(index) from None
    else:
        raise InvalidIndexTypeError(index)

    if value < 0:
        raise NegativeIndexError(value)
    return value


class AnnouncementList:
    """Bounded, ordered announcement list of the current version.

    Attributes:
        registry: Version registry providing the current version key
        capacity: Maximum announcements per version
        codec: Attachment serialization codec

    Example:
        >>> announcements = AnnouncementList(registry, capacity=30)
        >>> entry = await announcements.append(announcement)
        >>> await announcements.get_all(str(entry.version_key))
        [Announcement(...)]
    """

    def __init__(
        self,
        registry: VersionRegistry,
        capacity: int = 30,
        codec: AttachmentCodec | None = None,
    ) -> None:
        self.registry = registry
        self.store = registry.store
        self.capacity = capacity
        self.codec = codec or JsonAttachmentCodec()

    async def append(self, announcement: Announcement) -> RegistryEntry:
        """Append to the current version, creating one if none exists.

        Returns:
            Registry entry of the version the announcement was added to

        Raises:
            CapacityExceededError: If the version already holds `capacity` entries
            AttachmentError: If the attachment cannot be encoded
            InvalidTextError: If the record is not encodable as UTF-8
            StoreError: If the store fails
        """
        record = announcement.to_record(self.codec)

        async def body(txn: Transaction) -> RegistryEntry | None:
            entry = await self.registry.read(txn)
            if entry is None:
                return None
            key = str(entry.version_key)
            count = await txn.llen(key)
            if count >= self.capacity:
                raise CapacityExceededError(self.capacity, entry.version)
            txn.rpush(key, record)
            return entry

        while True:
            entry = await self.store.transaction(body, self.registry.registry_key)
            if entry is not None:
                break
            # No current version: create one unless another writer just did.
            await self.registry.rotate(expected=None)

        logger.debug(
            "Announcement appended",
            extra={"announcement_id": announcement.id, "version": entry.version},
        )
        return entry

    async def get_all(self, version_key: str) -> list[Announcement]:
        """Every announcement of a version in order, hidden ones included."""
        records = await self.store.lrange(version_key, 0, -1)
        return [Announcement.from_record(raw, self.codec) for raw in records]

    async def set_at(self, version_key: str, index: int, announcement: Announcement) -> None:
        """Replace the announcement at index, keeping all other positions.

        Raises:
            StoreError: If the list or index does not exist
        """
        await self.store.lset(version_key, index, announcement.to_record(self.codec))

    async def hide_at(self, index: Any) -> HideResult:
        """Hide the announcement at index in the current version.

        If it was the last visible announcement, the version is rotated
        (its list destroyed) instead of updated.

        Raises:
            InvalidIndexTypeError: If index is not an integer
            NegativeIndexError: If index is lower than 0
            IndexNotFoundError: If there is no announcement at index
            StoreError: If the store fails
        """
        position = coerce_index(index)

        async def body(txn: Transaction) -> HideResult:
            entry = await self.registry.read(txn)
            if entry is None:
                raise IndexNotFoundError(position, 0)
            key = str(entry.version_key)
            records = await txn.lrange(key, 0, -1)
            if position >= len(records):
                raise IndexNotFoundError(position, len(records))

            announcements = [Announcement.from_record(raw, self.codec) for raw in records]
            target = announcements[position]
            if target.hidden:
                return HideResult(HideOutcome.ALREADY_HIDDEN, entry)

            others_hidden = all(
                a.hidden for i, a in enumerate(announcements) if i != position
            )
            if others_hidden:
                new_entry = self.registry.stage_rotation(txn, entry)
                return HideResult(HideOutcome.ROTATED, new_entry, previous=entry)

            txn.lset(key, position, target.hide().to_record(self.codec))
            return HideResult(HideOutcome.HIDDEN, entry)

        result = await self.store.transaction(body, self.registry.registry_key)
        if result.rotated:
            self.registry.committed(result.entry, result.previous)
        logger.debug(
            "Announcement hide processed",
            extra={"index": position, "outcome": result.outcome.value, "version": result.entry.version},
        )
        return result
