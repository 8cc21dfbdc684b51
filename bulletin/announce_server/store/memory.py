"""
In-memory key-value store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without a Redis server

Invariants:
    - All data is lost on process exit
    - Provides the same atomicity guarantees as the Redis backend
    - Safe for concurrent access from multiple coroutines

How to change safely:
    - Keep list semantics (ranges, errors) identical to Redis
    - Keep interface compatible with KeyValueStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Dict, List, Optional, Union

from ..errors import StoreConnectionError, StoreError
from .base import T, TransactionBody

logger = logging.getLogger(__name__)

Value = Union[str, List[str]]


def _list_range(items: List[str], start: int, stop: int) -> List[str]:
    """Slice a list the way LRANGE does (inclusive stop, negative from end)."""
    length = len(items)
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    if start >= length or start > stop:
        return []
    return items[start:min(stop, length - 1) + 1]


class _MemoryTransaction:
    """Transaction handle over the in-memory data.

    Reads go straight to the data (the store lock is held for the whole
    body); writes are queued and applied by the store after the body
    returns.
    """

    def __init__(self, store: InMemoryKeyValueStore) -> None:
        self._store = store
        self._writes: List[Callable[[], Any]] = []

    async def watch(self, *keys: str) -> None:
        # The lock already excludes every other writer.
        self._check_read()

    async def get(self, key: str) -> Optional[str]:
        self._check_read()
        return self._store._get(key)

    async def llen(self, key: str) -> int:
        self._check_read()
        return len(self._store._list(key))

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        self._check_read()
        return _list_range(self._store._list(key), start, stop)

    def set(self, key: str, value: str) -> None:
        self._writes.append(lambda: self._store._set(key, value))

    def delete(self, *keys: str) -> None:
        self._writes.append(lambda: self._store._delete(*keys))

    def rpush(self, key: str, value: str) -> None:
        self._writes.append(lambda: self._store._rpush(key, value))

    def lset(self, key: str, index: int, value: str) -> None:
        self._writes.append(lambda: self._store._lset(key, index, value))

    def _check_read(self) -> None:
        if self._writes:
            raise StoreError("Transaction reads must happen before queued writes")

    def _commit(self) -> None:
        # Validate against a copy so a failing write leaves nothing applied.
        snapshot = {
            k: list(v) if isinstance(v, list) else v
            for k, v in self._store._data.items()
        }
        try:
            for write in self._writes:
                write()
        except StoreError:
            self._store._data = snapshot
            raise


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore for testing.

    Stores scalar values and lists in a single dict. Transactions hold the
    store lock for the whole body, so every transaction is serialized and
    never needs a retry.

    Attributes:
        transaction_count: Number of committed transactions (testing aid)

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.connect()
        >>> await store.rpush("list", "a")
        1
        >>> await store.lrange("list", 0, -1)
        ['a']
    """

    def __init__(self) -> None:
        self._data: Dict[str, Value] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[Exception] = None
        self.transaction_count = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryKeyValueStore connected")

    async def close(self) -> None:
        """Close the store. Data is kept so a later connect() sees it."""
        self._connected = False
        logger.debug("InMemoryKeyValueStore closed")

    async def get(self, key: str) -> Optional[str]:
        async with self._operation():
            return self._get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._operation():
            self._set(key, value)

    async def delete(self, *keys: str) -> int:
        async with self._operation():
            return self._delete(*keys)

    async def rpush(self, key: str, value: str) -> int:
        async with self._operation():
            return self._rpush(key, value)

    async def llen(self, key: str) -> int:
        async with self._operation():
            return len(self._list(key))

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        async with self._operation():
            return _list_range(self._list(key), start, stop)

    async def lset(self, key: str, index: int, value: str) -> None:
        async with self._operation():
            self._lset(key, index, value)

    async def transaction(self, body: TransactionBody[T], *watch_keys: str) -> T:
        """Run body with the store lock held, then apply its queued writes.

        Args:
            body: Coroutine function receiving a transaction handle
            watch_keys: Ignored; the lock serializes all writers

        Returns:
            The body's return value
        """
        async with self._operation():
            txn = _MemoryTransaction(self)
            result = await body(txn)
            txn._commit()
            self.transaction_count += 1
        return result

    # Internal operations (caller holds the lock)

    def _get(self, key: str) -> Optional[str]:
        value = self._data.get(key)
        if isinstance(value, list):
            raise StoreError(f"WRONGTYPE key {key} holds a list")
        return value

    def _list(self, key: str) -> List[str]:
        value = self._data.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise StoreError(f"WRONGTYPE key {key} holds a string")
        return value

    def _set(self, key: str, value: str) -> None:
        self._data[key] = value

    def _delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    def _rpush(self, key: str, value: str) -> int:
        items = self._list(key)
        if key not in self._data:
            self._data[key] = items
        items.append(value)
        return len(items)

    def _lset(self, key: str, index: int, value: str) -> None:
        if key not in self._data:
            raise StoreError(f"no such key: {key}")
        items = self._list(key)
        if not -len(items) <= index < len(items):
            raise StoreError(f"index out of range: {index}")
        items[index] = value

    def _operation(self) -> _Operation:
        return _Operation(self)

    # Testing helpers

    def keys(self) -> List[str]:
        """List every stored key (testing helper)."""
        return sorted(self._data)

    def dump(self, key: str) -> Optional[Value]:
        """Return a copy of a raw stored value (testing helper)."""
        value = self._data.get(key)
        return list(value) if isinstance(value, list) else value

    def clear(self) -> None:
        """Remove all data (testing helper)."""
        self._data.clear()

    def inject_failure(self, exception: Exception) -> None:
        """Make the next operation fail with StoreError caused by exception."""
        self._pending_failure = exception


class _Operation:
    """Async context guarding one store operation.

    Checks the connection, raises any injected failure and holds the lock.
    """

    def __init__(self, store: InMemoryKeyValueStore) -> None:
        self._store = store

    async def __aenter__(self) -> None:
        store = self._store
        if not store._connected:
            raise StoreConnectionError("Not connected")
        if store._pending_failure is not None:
            failure, store._pending_failure = store._pending_failure, None
            raise StoreError(f"Store operation failed: {failure}") from failure
        await store._lock.acquire()

    async def __aexit__(self, *exc_info: Any) -> None:
        self._store._lock.release()
