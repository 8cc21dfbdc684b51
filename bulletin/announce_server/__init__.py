"""
Bulletin - Server-wide versioned announcements on a key-value store.

This package implements the publish side of a game-server notice system:
- Announcements are shared by every player, not per-user mail
- Announcements live in Redis lists, one list per "version"
- The current version key and its expiry live in one registry value
- Per-user read/delete state is owned by the calling application

Architecture:
    ┌─────────────┐     ┌──────────────────────┐
    │  Operator   │────▶│  HTTP admin API      │
    │  (GM tools) │     │  (FastAPI)           │
    └─────────────┘     └──────────┬───────────┘
                                   │
                                   ▼
                        ┌──────────────────────┐     ┌──────────────────┐
                        │ AnnouncementService  │────▶│ RotationScheduler│
                        └──────────┬───────────┘     └──────────────────┘
                                   │
                     ┌─────────────┴─────────────┐
                     ▼                           ▼
           ┌──────────────────┐        ┌────────────────┐
           │ AnnouncementList │        │VersionRegistry │
           │ (one per version)│        │ (V:AND:E)      │
           └────────┬─────────┘        └───────┬────────┘
                     └─────────────┬─────────────┘
                                   ▼
                        ┌──────────────────────┐
                        │ KeyValueStore (Redis)│
                        └──────────────────────┘

Invariants:
    - At most one version is current
    - A version never holds more than `capacity` announcements
    - Rotation destroys the old version's list and moves the pointer atomically
    - When every announcement of a version is hidden, the version rotates

How to change safely:
    - Keep the persisted layout stable; running servers share the store
    - Route every write through a store transaction
"""

__version__ = "1.0.0"

from .errors import (
    AnnouncementError,
    AttachmentError,
    CapacityExceededError,
    ErrorKind,
    IndexNotFoundError,
    InvalidIndexTypeError,
    InvalidTextError,
    NegativeIndexError,
    StoreConnectionError,
    StoreError,
)
from .listing import AnnouncementList, HideOutcome, HideResult
from .records import Announcement, AttachmentCodec, JsonAttachmentCodec, RegistryEntry, VersionKey
from .registry import Rotation, VersionRegistry
from .scheduler import RotationScheduler
from .service import AnnouncementService, AnnouncementSnapshot

__all__ = [
    # Version
    "__version__",
    # Service
    "AnnouncementService",
    "AnnouncementSnapshot",
    # Components
    "AnnouncementList",
    "VersionRegistry",
    "RotationScheduler",
    "Rotation",
    "HideOutcome",
    "HideResult",
    # Records
    "Announcement",
    "AttachmentCodec",
    "JsonAttachmentCodec",
    "RegistryEntry",
    "VersionKey",
    # Errors
    "AnnouncementError",
    "ErrorKind",
    "InvalidIndexTypeError",
    "NegativeIndexError",
    "IndexNotFoundError",
    "CapacityExceededError",
    "AttachmentError",
    "InvalidTextError",
    "StoreError",
    "StoreConnectionError",
]
