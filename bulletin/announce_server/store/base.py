"""
Base protocol and types for the key-value store abstraction.

This module defines the KeyValueStore protocol that all backends must
implement, along with the Transaction protocol used for atomic updates.

Invariants:
    - Transactions are all-or-nothing: queued writes commit together or not at all
    - A transaction body is re-run when a watched key changes before commit
    - Reads inside a transaction must happen before the first queued write
    - Backend failures surface as StoreError, never as backend exceptions

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the in-memory backend semantically identical to Redis
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import (
    Protocol,
    TypeVar,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Transaction(Protocol):
    """Handle passed to a transaction body.

    Reads return current values immediately. Writes are queued and
    applied atomically once the body returns.

    Example:
        >>> async def body(txn):
        ...     count = await txn.llen("list")
        ...     txn.rpush("list", "item")
        ...     return count + 1
        >>> await store.transaction(body, "list")
    """

    async def watch(self, *keys: str) -> None:
        """Add keys to the conflict set of this transaction."""
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def llen(self, key: str) -> int:
        ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, *keys: str) -> None:
        ...

    def rpush(self, key: str, value: str) -> None:
        ...

    def lset(self, key: str, index: int, value: str) -> None:
        ...


TransactionBody = Callable[[Transaction], Awaitable[T]]


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for key-value store backends.

    Provides scalar values, ordered lists and optimistic transactions.

    Atomicity contract:
        - transaction() commits every queued write or none of them
        - A conflicting write to a watched key re-runs the body
        - An exception raised by the body aborts without writing

    Example:
        >>> store = RedisKeyValueStore(config)
        >>> await store.connect()
        >>> await store.rpush("ANNOUNCE:2026-10-19_1", '{"id": "..."}')
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store backend.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection to the store backend."""
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning the number that existed."""
        ...

    @abstractmethod
    async def rpush(self, key: str, value: str) -> int:
        """Append to a list, returning the new length."""
        ...

    @abstractmethod
    async def llen(self, key: str) -> int:
        ...

    @abstractmethod
    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        """Read list elements from start to stop inclusive (-1 is the last)."""
        ...

    @abstractmethod
    async def lset(self, key: str, index: int, value: str) -> None:
        """Replace the list element at index.

        Raises:
            StoreError: If the key is missing or index is out of range
        """
        ...

    @abstractmethod
    async def transaction(self, body: TransactionBody[T], *watch_keys: str) -> T:
        """Run body as an optimistic transaction.

        Args:
            body: Coroutine function receiving a Transaction
            watch_keys: Keys to watch before running the body

        Returns:
            Whatever the body returned on the committed attempt

        Raises:
            StoreError: If the backend fails
            Exception: Anything the body raises (nothing is committed)
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_store(config: "ServerConfig") -> KeyValueStore:
    """Factory function to create a store from configuration.

    Args:
        config: Server configuration

    Returns:
        Appropriate KeyValueStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryKeyValueStore
    from .redis import RedisKeyValueStore

    if config.store_backend == StoreBackend.REDIS:
        return RedisKeyValueStore(config.redis)
    elif config.store_backend == StoreBackend.MEMORY:
        logger.warning("Using in-memory store, data is lost on exit")
        return InMemoryKeyValueStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
