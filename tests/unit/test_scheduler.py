"""
Unit tests for RotationScheduler.

The scheduler measures time with the injected clock, so tests advance a
FakeClock instead of sleeping for real expiry periods.
"""

import asyncio

import pytest
import pytest_asyncio

from bulletin.announce_server.records import RegistryEntry, VersionKey
from bulletin.announce_server.scheduler import RotationScheduler


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Wait until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def make_entry(clock, sequence: int = 1, ttl: int = 60) -> RegistryEntry:
    return RegistryEntry(VersionKey("ANNOUNCE:", "2026-10-19", sequence), clock.seconds() + ttl)


@pytest.fixture
def fired():
    return []


@pytest_asyncio.fixture
async def scheduler(clock, fired):
    async def on_expired(entry):
        fired.append(entry)

    sched = RotationScheduler(on_expired, clock.seconds, poll_interval=0.01)
    yield sched
    sched.cancel()


class TestArm:
    """Tests for arm()."""

    @pytest.mark.asyncio
    async def test_does_not_fire_before_expiry(self, scheduler, clock, fired):
        scheduler.arm(make_entry(clock))

        await asyncio.sleep(0.05)

        assert fired == []
        assert scheduler.is_armed

    @pytest.mark.asyncio
    async def test_fires_after_clock_passes_expiry(self, scheduler, clock, fired):
        entry = make_entry(clock)
        scheduler.arm(entry)

        clock.advance(61)
        await eventually(lambda: fired)

        assert fired == [entry]
        assert scheduler.fire_count == 1

    @pytest.mark.asyncio
    async def test_already_expired_fires_immediately(self, scheduler, clock, fired):
        entry = make_entry(clock, ttl=-10)

        scheduler.arm(entry)
        await scheduler.wait()

        assert fired == [entry]

    @pytest.mark.asyncio
    async def test_rearm_replaces_pending_timer(self, scheduler, clock, fired):
        """Only the latest armed entry fires."""
        first = make_entry(clock, sequence=1, ttl=10)
        second = make_entry(clock, sequence=2, ttl=100)
        scheduler.arm(first)
        scheduler.arm(second)

        clock.advance(50)
        await asyncio.sleep(0.05)
        assert fired == []

        clock.advance(60)
        await eventually(lambda: fired)

        assert fired == [second]
        assert scheduler.fire_count == 1
        assert scheduler.armed_entry == second

    @pytest.mark.asyncio
    async def test_fixed_delay(self, scheduler, clock, fired):
        entry = make_entry(clock, ttl=10_000)

        scheduler.arm(entry, delay=0.01)
        await scheduler.wait()

        assert fired == [entry]

    @pytest.mark.asyncio
    async def test_callback_can_rearm(self, clock):
        """The expiry callback may arm the next timer from inside its own task."""
        fired = []
        scheduler = None

        async def on_expired(entry):
            fired.append(entry)
            if len(fired) == 1:
                scheduler.arm(make_entry(clock, sequence=2, ttl=-1))

        scheduler = RotationScheduler(on_expired, clock.seconds, poll_interval=0.01)
        scheduler.arm(make_entry(clock, ttl=-1))

        await eventually(lambda: len(fired) == 2)

        assert [e.version_key.sequence for e in fired] == [1, 2]
        scheduler.cancel()


class TestCancel:
    """Tests for cancel()."""

    @pytest.mark.asyncio
    async def test_cancel_prevents_fire(self, scheduler, clock, fired):
        scheduler.arm(make_entry(clock))

        scheduler.cancel()
        clock.advance(120)
        await asyncio.sleep(0.05)

        assert fired == []
        assert not scheduler.is_armed
        assert scheduler.armed_entry is None

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, scheduler):
        scheduler.cancel()

        assert not scheduler.is_armed
