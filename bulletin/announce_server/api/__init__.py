"""
API module for the announcement server.

This module provides the external interface:
- HTTP admin API (FastAPI) over AnnouncementService

Invariants:
    - Endpoints mirror AnnouncementService semantics
    - Errors map to status codes by ErrorKind

How to change safely:
    - Add new endpoints, don't modify existing response shapes
"""

from .http_server import create_http_app

__all__ = [
    "create_http_app",
]
