"""
Announcement service facade.

The AnnouncementService composes the version registry, the announcement
list and the expiry scheduler into the operations an operator (GM) and
the calling application use:

- add_announcement / get_announcement / hide_announcement
- get_version / get_expire_time
- delete_all / change_version (both force a rotation)

Announcements are shared by every player on the server. Per-user read or
delete state, and the version each user last saw, belong to the calling
application: when get_version() differs from the stored one, that state
must be reset. get_announcement() returns hidden announcements too; the
caller removes them before showing the list to users.

Versions change when:
    1. Every announcement of the version has been hidden
    2. delete_all() or change_version() is called
    3. The version reaches its expiry time

Invariants:
    - At most one version is current
    - A rotation destroys the superseded version's data
    - The expiry timer always targets the latest rotation seen by this instance

How to change safely:
    - New operations must read the version through the registry
    - Keep errors inside the closed taxonomy in errors.py
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from .config import AnnouncementConfig
from .listing import AnnouncementList, HideResult
from .records import Announcement, AttachmentCodec, RegistryEntry
from .registry import Clock, VersionRegistry
from .scheduler import RotationScheduler
from .store.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class AnnouncementSnapshot:
    """All announcements of the current version.

    Attributes:
        announcements: Announcements in order, hidden ones included
        version: Client version id, None when no version exists
        expire_at: Version expiry (Unix seconds), 0 when no version exists
    """

    announcements: list[Announcement] = field(default_factory=list)
    version: str | None = None
    expire_at: int = 0

    @property
    def visible(self) -> list[Announcement]:
        """Announcements end users may see."""
        return [a for a in self.announcements if not a.hidden]


class AnnouncementService:
    """Server-wide versioned announcement store.

    Attributes:
        store: Backing key-value store
        config: Announcement configuration
        registry: Current version pointer
        announcements: Current version list
        scheduler: Expiry timer

    Example:
        >>> service = AnnouncementService(store)
        >>> async with service:
        ...     announcement_id = await service.add_announcement("Maintenance", "Tonight 2am")
        ...     snapshot = await service.get_announcement()
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: AnnouncementConfig | None = None,
        codec: AttachmentCodec | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Backing key-value store (connected by start())
            config: Announcement configuration
            codec: Attachment codec (JSON values by default)
            clock: Source of the current local time
        """
        self.store = store
        self.config = config or AnnouncementConfig()
        self.registry = VersionRegistry(
            store,
            expire_seconds=self.config.expire_seconds,
            key_prefix=self.config.key_prefix,
            registry_key=self.config.registry_key,
            clock=clock,
        )
        self.announcements = AnnouncementList(
            self.registry,
            capacity=self.config.capacity,
            codec=codec,
        )
        self.scheduler = RotationScheduler(
            self._on_expired,
            self.registry.now_seconds,
            poll_interval=self.config.timer_poll_seconds,
        )
        self.registry.add_listener(self.scheduler.arm)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> AnnouncementService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Connect the store and arm the timer for the current version.

        Raises:
            StoreError: If the store cannot be reached
        """
        if self._running:
            logger.warning("Announcement service already running")
            return

        await self.store.connect()
        entry = await self.registry.get()
        if entry is not None:
            self.scheduler.arm(entry)
        self._running = True
        logger.info(
            "Announcement service started",
            extra={
                "version": entry.version if entry else None,
                "expire_at": entry.expire_at if entry else 0,
            },
        )

    async def stop(self) -> None:
        """Cancel the timer and release the store."""
        self.scheduler.cancel()
        if not self._running:
            return
        await self.store.close()
        self._running = False
        logger.info("Announcement service stopped")

    async def add_announcement(self, title: str, content: str, attach: Any = None) -> str:
        """Add a visible announcement to the current version.

        Creates a version first if none exists.

        Args:
            title: Announcement title
            content: Announcement text
            attach: Optional attachment, encoded with the service codec

        Returns:
            The new announcement id

        Raises:
            CapacityExceededError: If the version is full
            AttachmentError: If the attachment cannot be encoded
            InvalidTextError: If title or content is not encodable as UTF-8
            StoreError: If the store fails
        """
        announcement, _entry = await self.publish(title, content, attach)
        return announcement.id

    async def publish(
        self, title: str, content: str, attach: Any = None
    ) -> tuple[Announcement, RegistryEntry]:
        """Like add_announcement(), also returning the version it was added to.

        The entry is the one the append committed against, so it stays
        correct even if the version rotates right afterwards.
        """
        announcement = Announcement(
            id=str(uuid.uuid1()),
            title=title,
            content=content,
            attach=attach,
        )
        entry = await self.announcements.append(announcement)
        logger.info(
            "Announcement added",
            extra={"announcement_id": announcement.id, "version": entry.version},
        )
        return announcement, entry

    async def get_announcement(self) -> AnnouncementSnapshot:
        """All announcements of the current version, hidden ones included."""
        entry = await self.registry.get()
        if entry is None:
            return AnnouncementSnapshot()
        announcements = await self.announcements.get_all(str(entry.version_key))
        return AnnouncementSnapshot(
            announcements=announcements,
            version=entry.version,
            expire_at=entry.expire_at,
        )

    async def hide_announcement(self, index: Any) -> HideResult:
        """Hide the announcement at index.

        Hiding the last visible announcement destroys the version and
        starts a new, empty one; callers should warn the operator.

        Raises:
            InvalidIndexTypeError: If index is not an integer
            NegativeIndexError: If index is lower than 0
            IndexNotFoundError: If there is no announcement at index
            StoreError: If the store fails
        """
        result = await self.announcements.hide_at(index)
        logger.info(
            "Announcement hidden",
            extra={"index": index, "outcome": result.outcome.value, "version": result.entry.version},
        )
        return result

    async def get_version(self) -> str | None:
        """Client id of the current version, None when no version exists."""
        entry = await self.registry.get()
        return entry.version if entry is not None else None

    async def get_expire_time(self) -> int:
        """Expiry of the current version (Unix seconds), 0 when none."""
        entry = await self.registry.get()
        return entry.expire_at if entry is not None else 0

    async def delete_all(self) -> str:
        """Destroy every announcement by rotating to a new version.

        Returns:
            The new client version id
        """
        return await self._force_rotation("delete_all")

    async def change_version(self) -> str:
        """Rotate to a new, empty version.

        Returns:
            The new client version id
        """
        return await self._force_rotation("change_version")

    async def _force_rotation(self, reason: str) -> str:
        rotation = await self.registry.rotate()
        logger.info("Forced version rotation", extra={"reason": reason, "version": rotation.entry.version})
        return rotation.entry.version

    async def _on_expired(self, entry: RegistryEntry) -> None:
        """Expiry timer callback.

        With revalidate_on_expiry (the default), the rotation only happens if
        the version the timer was armed for is still current; otherwise the
        timer is re-armed for whatever is current now. This suppresses
        back-to-back rotations when several instances share a store. With
        revalidation disabled the rotation is unconditional.
        """
        try:
            if self.config.revalidate_on_expiry:
                rotation = await self.registry.rotate(expected=entry.version_key)
                if not rotation.rotated and rotation.entry is not None:
                    self.scheduler.arm(rotation.entry)
            else:
                await self.registry.rotate()
        except Exception as e:
            logger.error(
                f"Expiry rotation failed: {e}",
                exc_info=True,
                extra={"version": entry.version},
            )
            self.scheduler.arm(entry, delay=self.config.timer_retry_seconds)
