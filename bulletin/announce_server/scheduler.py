"""
Expiry timer for the current announcement version.

The RotationScheduler holds one asyncio task that waits until the
current version's expiry and then runs the expiry callback. Every
rotation re-arms it, replacing the pending task.

Invariants:
    - At most one timer task is pending per scheduler
    - arm() always replaces the previous task
    - The timer measures time with the injected clock, so a clock that
      jumps forward fires the callback within one poll interval

How to change safely:
    - The callback must not call arm() synchronously before returning its
      own task; it runs inside the task being replaced
    - Keep the poll interval short relative to the version lifetime
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .records import RegistryEntry

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[RegistryEntry], Awaitable[None]]


class RotationScheduler:
    """Schedules the expiry callback for the current version.

    Attributes:
        poll_interval: Longest single sleep while waiting for expiry
        armed_entry: Entry the pending timer fires for (None if idle)

    Example:
        >>> scheduler = RotationScheduler(on_expired, now_seconds)
        >>> scheduler.arm(entry)      # fires on_expired(entry) at entry.expire_at
        >>> scheduler.cancel()
    """

    def __init__(
        self,
        on_expired: ExpiryCallback,
        now_seconds: Callable[[], float],
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            on_expired: Coroutine function run with the expired entry
            now_seconds: Current Unix time in seconds
            poll_interval: Longest single sleep while waiting
        """
        self.on_expired = on_expired
        self.now_seconds = now_seconds
        self.poll_interval = poll_interval
        self.armed_entry: RegistryEntry | None = None
        self._task: asyncio.Task | None = None
        self._fire_count = 0

    @property
    def is_armed(self) -> bool:
        """Whether a timer is pending."""
        return self._task is not None and not self._task.done()

    @property
    def fire_count(self) -> int:
        """Number of times the expiry callback has been started."""
        return self._fire_count

    def arm(self, entry: RegistryEntry, delay: float | None = None) -> None:
        """Replace the pending timer with one firing at entry.expire_at.

        Args:
            entry: Registry entry to wait for
            delay: Fixed delay in seconds instead of waiting for expiry
        """
        current = asyncio.current_task()
        if self._task is not None and self._task is not current:
            self._task.cancel()
        self.armed_entry = entry
        self._task = asyncio.create_task(
            self._run(entry, delay), name=f"announce-expiry-{entry.version}"
        )
        logger.debug(
            "Expiry timer armed",
            extra={"version": entry.version, "expire_at": entry.expire_at, "delay": delay},
        )

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        current = asyncio.current_task()
        if self._task is not None and self._task is not current:
            self._task.cancel()
        self._task = None
        self.armed_entry = None

    async def wait(self) -> None:
        """Wait for the pending timer task to finish (testing helper)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self, entry: RegistryEntry, delay: float | None) -> None:
        try:
            if delay is not None:
                await asyncio.sleep(delay)
            else:
                while True:
                    remaining = entry.expire_at - self.now_seconds()
                    if remaining <= 0:
                        break
                    await asyncio.sleep(min(remaining, self.poll_interval))

            self._fire_count += 1
            logger.info("Announcement version expired", extra={"version": entry.version})
            await self.on_expired(entry)

        except asyncio.CancelledError:
            logger.debug("Expiry timer cancelled", extra={"version": entry.version})
            raise
