"""
Redis key-value store implementation.

This module provides the production backend for the announcement store.
It works with:
- Redis (standalone or Sentinel-managed primary)
- Any Redis protocol-compatible server supporting WATCH/MULTI/EXEC

Invariants:
    - Transactions use WATCH/MULTI/EXEC and are retried on conflict
    - Every key read inside a transaction is watched
    - Responses are decoded to str (decode_responses=True)
    - Redis exceptions never leak; they are wrapped in StoreError

How to change safely:
    - Test against a real Redis server before deploying
    - Cluster mode needs all transaction keys in one hash slot
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from ..errors import StoreConnectionError, StoreError
from .base import T, TransactionBody

logger = logging.getLogger(__name__)


class _RedisTransaction:
    """Transaction handle over a WATCHing redis pipeline.

    Reads execute immediately (the pipeline is in watch mode); writes are
    collected and replayed after MULTI once the body has finished.
    """

    def __init__(self, pipe: Any) -> None:
        self._pipe = pipe
        self._writes: list[tuple[str, tuple[Any, ...]]] = []

    async def watch(self, *keys: str) -> None:
        self._check_read()
        if keys:
            await self._pipe.watch(*keys)

    async def get(self, key: str) -> str | None:
        await self.watch(key)
        return await self._pipe.get(key)

    async def llen(self, key: str) -> int:
        await self.watch(key)
        return int(await self._pipe.llen(key))

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        await self.watch(key)
        return list(await self._pipe.lrange(key, start, stop))

    def set(self, key: str, value: str) -> None:
        self._writes.append(("set", (key, value)))

    def delete(self, *keys: str) -> None:
        self._writes.append(("delete", keys))

    def rpush(self, key: str, value: str) -> None:
        self._writes.append(("rpush", (key, value)))

    def lset(self, key: str, index: int, value: str) -> None:
        self._writes.append(("lset", (key, index, value)))

    def _check_read(self) -> None:
        if self._writes:
            raise StoreError("Transaction reads must happen before queued writes")

    def _queue(self) -> None:
        """Switch the pipeline to MULTI and buffer the collected writes."""
        if not self._writes:
            return
        self._pipe.multi()
        for command, args in self._writes:
            getattr(self._pipe, command)(*args)


class RedisKeyValueStore:
    """Redis implementation of KeyValueStore protocol.

    Uses redis.asyncio with a connection pool.

    Attributes:
        config: Redis configuration

    Example:
        >>> config = RedisConfig(url="redis://localhost:6379/0")
        >>> store = RedisKeyValueStore(config)
        >>> await store.connect()
        >>> await store.set("V:AND:E", "ANNOUNCE:2026-10-19_1,1761523200")
    """

    def __init__(
        self,
        config: Any,
        client_factory: Callable[[], aioredis.Redis] | None = None,
    ) -> None:
        """Initialize Redis store.

        Args:
            config: RedisConfig instance with connection settings
            client_factory: Builds the client on connect() instead of the
                configured URL (e.g. an in-process fake server in tests)
        """
        self.config = config
        self._client_factory = client_factory or self._client_from_url
        self._client: aioredis.Redis | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to Redis."""
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """Connect to Redis and verify the server answers.

        Raises:
            StoreConnectionError: If connection fails
        """
        if self._connected:
            return

        client = self._client_factory()
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            raise StoreConnectionError(f"Failed to connect to Redis: {e}") from e

        self._client = client
        self._connected = True
        logger.info("Connected to Redis", extra={"url": self._redacted_url()})

    def _client_from_url(self) -> aioredis.Redis:
        return aioredis.from_url(
            self.config.url,
            decode_responses=True,
            socket_timeout=self.config.socket_timeout,
            max_connections=self.config.max_connections,
        )

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._connected = False
        logger.info("Redis connection closed")

    async def get(self, key: str) -> str | None:
        return await self._call("get", key)

    async def set(self, key: str, value: str) -> None:
        await self._call("set", key, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", *keys))

    async def rpush(self, key: str, value: str) -> int:
        return int(await self._call("rpush", key, value))

    async def llen(self, key: str) -> int:
        return int(await self._call("llen", key))

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return list(await self._call("lrange", key, start, stop))

    async def lset(self, key: str, index: int, value: str) -> None:
        await self._call("lset", key, index, value)

    async def transaction(self, body: TransactionBody[T], *watch_keys: str) -> T:
        """Run body under WATCH/MULTI/EXEC, retrying on WatchError.

        Args:
            body: Coroutine function receiving a transaction handle
            watch_keys: Keys watched before the body runs

        Returns:
            The body's return value from the committed attempt
        """
        client = self._require_client()

        async def run(pipe: Any) -> T:
            txn = _RedisTransaction(pipe)
            result = await body(txn)
            txn._queue()
            return result

        try:
            return await client.transaction(run, *watch_keys, value_from_callable=True)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreConnectionError(f"Redis transaction failed: {e}") from e
        except RedisError as e:
            raise StoreError(f"Redis transaction failed: {e}") from e

    async def _call(self, command: str, *args: Any) -> Any:
        client = self._require_client()
        try:
            return await getattr(client, command)(*args)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreConnectionError(f"Redis {command.upper()} failed: {e}") from e
        except RedisError as e:
            raise StoreError(f"Redis {command.upper()} failed: {e}") from e

    def _require_client(self) -> aioredis.Redis:
        if not self._connected or self._client is None:
            raise StoreConnectionError("Not connected")
        return self._client

    def _redacted_url(self) -> str:
        """Connection URL with any password removed."""
        url = self.config.url
        scheme, sep, rest = url.partition("://")
        if "@" not in rest:
            return url
        return f"{scheme}{sep}***@{rest.split('@', 1)[1]}"
