"""
Version registry for the announcement store.

The registry owns the single "current version" pointer: one scalar value
holding the current version key and its expiry. Rotation replaces the
current version with a new, empty one and destroys the old version list
in the same transaction.

Invariants:
    - Zero or one version is current at any time
    - Rotation deletes the old list and rewrites the pointer atomically
    - Same-day rotations strictly increase the sequence; a new day restarts at 1
    - Listeners are notified only after a rotation has committed

How to change safely:
    - Every write to the registry key must go through stage_rotation()
    - Listeners run synchronously in the rotating coroutine; keep them cheap
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .records import RegistryEntry, VersionKey
from .store.base import KeyValueStore, Transaction

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
RotationListener = Callable[[RegistryEntry], None]

ANY_VERSION: Any = object()


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


@dataclass(frozen=True)
class Rotation:
    """Outcome of a rotate() call.

    Attributes:
        entry: Registry entry current after the call (None if no version exists)
        previous: Entry that was current before the call
        rotated: False when the expected version no longer matched
    """

    entry: RegistryEntry | None
    previous: RegistryEntry | None
    rotated: bool


class VersionRegistry:
    """Owns the current version pointer and performs rotation.

    Example:
        >>> registry = VersionRegistry(store, expire_seconds=604800)
        >>> rotation = await registry.rotate()
        >>> rotation.entry.version
        '2026-10-19_1'
    """

    def __init__(
        self,
        store: KeyValueStore,
        expire_seconds: int = 604800,
        key_prefix: str = "ANNOUNCE:",
        registry_key: str = "V:AND:E",
        clock: Clock | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Backing key-value store
            expire_seconds: Lifetime of each new version
            key_prefix: Prefix of version list keys
            registry_key: Key of the registry value
            clock: Source of the current time (local, timezone-aware)
        """
        self.store = store
        self.expire_seconds = expire_seconds
        self.key_prefix = key_prefix
        self.registry_key = registry_key
        self.clock = clock or local_now
        self._listeners: list[RotationListener] = []

    def add_listener(self, listener: RotationListener) -> None:
        """Register a callback run with the new entry after every rotation."""
        self._listeners.append(listener)

    def remove_listener(self, listener: RotationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def now_seconds(self) -> int:
        """Current time as Unix epoch seconds."""
        return int(self.clock().timestamp())

    async def get(self) -> RegistryEntry | None:
        """Read the current entry, None when no version exists."""
        raw = await self.store.get(self.registry_key)
        return self.decode(raw)

    async def read(self, txn: Transaction) -> RegistryEntry | None:
        """Read the current entry inside a transaction (watching it)."""
        raw = await txn.get(self.registry_key)
        return self.decode(raw)

    def decode(self, raw: str | None) -> RegistryEntry | None:
        if raw is None:
            return None
        return RegistryEntry.decode(raw, self.key_prefix)

    def next_entry(self, previous: RegistryEntry | None) -> RegistryEntry:
        """Compute the entry that replaces previous at the current time."""
        now = self.clock()
        day = now.date()
        if previous is None:
            version_key = VersionKey.first(self.key_prefix, day)
        else:
            version_key = previous.version_key.successor(day)
        return RegistryEntry(
            version_key=version_key,
            expire_at=int(now.timestamp()) + self.expire_seconds,
        )

    def stage_rotation(self, txn: Transaction, previous: RegistryEntry | None) -> RegistryEntry:
        """Queue the writes of a rotation into an open transaction.

        The caller must have read previous through the same transaction.
        Call committed() with the result once the transaction succeeds.
        """
        entry = self.next_entry(previous)
        if previous is not None:
            txn.delete(str(previous.version_key))
        txn.set(self.registry_key, entry.encode())
        return entry

    async def rotate(self, expected: VersionKey | None = ANY_VERSION) -> Rotation:
        """Replace the current version with a new, empty one.

        Args:
            expected: Version key the caller believes is current. None means
                "only create a version if none exists". When the registry no
                longer matches, nothing is written. Omit to rotate
                unconditionally.

        Returns:
            Rotation describing the resulting current entry

        Raises:
            StoreError: If the store fails (nothing is written)
        """

        async def body(txn: Transaction) -> Rotation:
            previous = await self.read(txn)
            if expected is not ANY_VERSION:
                current_key = previous.version_key if previous is not None else None
                if current_key != expected:
                    return Rotation(entry=previous, previous=previous, rotated=False)
            entry = self.stage_rotation(txn, previous)
            return Rotation(entry=entry, previous=previous, rotated=True)

        rotation = await self.store.transaction(body, self.registry_key)
        if rotation.rotated:
            self.committed(rotation.entry, rotation.previous)
        else:
            logger.debug(
                "Rotation skipped, version changed",
                extra={
                    "expected": expected.client_id if expected is not None else None,
                    "current": rotation.entry.version if rotation.entry else None,
                },
            )
        return rotation

    def committed(self, entry: RegistryEntry, previous: RegistryEntry | None) -> None:
        """Log a committed rotation and notify listeners."""
        logger.info(
            "Announcement version rotated",
            extra={
                "old_version": previous.version if previous is not None else None,
                "new_version": entry.version,
                "expire_at": entry.expire_at,
            },
        )
        for listener in list(self._listeners):
            listener(entry)
