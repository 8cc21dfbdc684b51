"""
Bulletin Test Suite.

This package contains:
- unit/: Unit tests (in-memory store, no external dependencies)
- integration/: Service facade and HTTP API tests (in-memory store)
"""
