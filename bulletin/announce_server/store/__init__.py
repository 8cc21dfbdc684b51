"""
Key-value store abstraction for the announcement store.

This module provides a pluggable store backend interface supporting:
- Redis (production)
- In-memory (for testing)

Invariants:
    - transaction() is all-or-nothing
    - Backend failures surface as StoreError
    - Lists keep insertion order

How to change safely:
    - New backends must implement the KeyValueStore protocol
    - Run the unit tests against every backend you add
"""

from .base import (
    KeyValueStore,
    Transaction,
    create_store,
)
from .memory import InMemoryKeyValueStore
from .redis import RedisKeyValueStore

__all__ = [
    # Protocol
    "KeyValueStore",
    "Transaction",
    # Factory
    "create_store",
    # Implementations
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
]
