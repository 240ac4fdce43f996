from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from chime.core.clock import to_ms
from chime.db.storage import MemoryStorage
from chime.repositories.reminder import ReminderRepository
from chime.services.reminders import ReminderService
from chime.services.scheduler import ReminderScheduler


class FakeClock:
    def __init__(self, start: int) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ManualTimers:
    """Sleep replacement whose timers only expire when the test says so."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.pending: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        entry = (seconds, future)
        self.pending.append(entry)
        try:
            await future
        finally:
            self.pending.remove(entry)

    async def fire_next(self) -> None:
        seconds, future = min(self.pending, key=lambda item: item[0])
        self.clock.advance(round(seconds * 1000))
        future.set_result(None)
        await settle()


class RecordingNotifier:
    def __init__(self, ok: bool = True, raises: Exception | None = None) -> None:
        self.ok = ok
        self.raises = raises
        self.presented: list[str] = []
        self.sounds: list[tuple] = []

    async def present(self, reminder) -> bool:
        self.presented.append(reminder.id)
        if self.raises is not None:
            raise self.raises
        return self.ok

    async def play_sound(self, kind, volume, muted) -> None:
        self.sounds.append((kind, volume, muted))


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


# Friday 2026-10-16 10:00 UTC
FRIDAY_10AM = to_ms(datetime(2026, 10, 16, 10, 0, tzinfo=timezone.utc))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(FRIDAY_10AM)


@pytest.fixture()
def timers(clock: FakeClock) -> ManualTimers:
    return ManualTimers(clock)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
async def scheduler(storage, notifier, clock, timers):
    repository = ReminderRepository(storage)
    await repository.load()
    instance = ReminderScheduler(repository, notifier, clock=clock, sleep=timers.sleep)
    yield instance
    await instance.shutdown()


@pytest.fixture()
def service(scheduler) -> ReminderService:
    return ReminderService(scheduler)
