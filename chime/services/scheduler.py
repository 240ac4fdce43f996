from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from chime.core.clock import Clock, now_ms
from chime.core.enums import FireSource, SoundKind
from chime.core.exceptions import AppError, NotFoundError
from chime.models.reminder import HistoryEntry, RelativeDelay, Reminder
from chime.repositories.reminder import ReminderRepository
from chime.schemas.reminder import BackgroundEntry
from chime.services.notifier import Notifier
from chime.services.occurrence import compute_next

if TYPE_CHECKING:
    from chime.integrations.background import BackgroundMirror

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
ErrorHandler = Callable[[str, AppError], None]


class ReminderScheduler:
    """Keeps exactly one timer task per enabled reminder and drives its lifecycle.

    ``lock`` is the single serialization boundary around the repository and the
    timer map. ``toggle_enable``, ``reconcile_on_startup`` and
    ``report_external_fire`` take it themselves; ``arm``, ``disarm``,
    ``on_expire`` and ``sync_mirror`` expect the caller to hold it. A timer task re-checks its
    generation under the lock before firing, so a reminder disarmed after its
    sleep finished but before it got the lock never fires for that arm cycle.
    """

    def __init__(
        self,
        repository: ReminderRepository,
        notifier: Notifier,
        *,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
        mirror: BackgroundMirror | None = None,
        zone: tzinfo | None = None,
        sound_volume: float = 0.8,
        sound_muted: bool = False,
        background_allowance_ms: int = 5000,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.clock = clock or now_ms
        self.sleep = sleep or asyncio.sleep
        self.mirror = mirror
        self.zone = zone
        self.sound_volume = sound_volume
        self.sound_muted = sound_muted
        self.background_allowance_ms = background_allowance_ms
        self.on_error = on_error

        self.lock = asyncio.Lock()
        self.failures: dict[str, AppError] = {}
        self._timers: dict[str, tuple[int, asyncio.Task]] = {}
        self._generation = 0

    @property
    def armed_ids(self) -> set[str]:
        return set(self._timers)

    def is_armed(self, reminder_id: str) -> bool:
        return reminder_id in self._timers

    def next_fire_time(self, reminder: Reminder, reference: int | None = None) -> int:
        return compute_next(reminder.schedule, self.clock() if reference is None else reference, self.zone)

    def reset_occurrence(self, reminder: Reminder) -> None:
        """Restart the schedule from now, as on creation or re-enable."""
        if isinstance(reminder.schedule, RelativeDelay):
            reminder.schedule.remaining_repeats = reminder.schedule.repeat_count
        reminder.next_fire_time = self.next_fire_time(reminder)

    def arm(self, reminder: Reminder) -> None:
        self.disarm(reminder.id)
        if not reminder.enabled:
            return

        self._generation += 1
        generation = self._generation
        task = asyncio.create_task(
            self._run_timer(reminder.id, generation, reminder.next_fire_time),
            name=f"reminder:{reminder.id}",
        )
        task.add_done_callback(self._timer_done)
        self._timers[reminder.id] = (generation, task)
        logger.debug(
            "Reminder armed",
            extra={"reminder_id": reminder.id, "next_fire_time": reminder.next_fire_time},
        )

    def disarm(self, reminder_id: str) -> bool:
        entry = self._timers.pop(reminder_id, None)
        if entry is None:
            return False
        _, task = entry
        task.cancel()
        logger.debug("Reminder disarmed", extra={"reminder_id": reminder_id})
        return True

    async def on_expire(self, reminder: Reminder) -> Reminder:
        fired_at = self.clock()
        logger.info("Reminder fired", extra={"reminder_id": reminder.id, "fired_at": fired_at})

        await self._present(reminder)
        reminder.history.append(HistoryEntry(fired_at=fired_at, message=reminder.message))
        self._advance(reminder)

        await self._persist(reminder)
        if reminder.enabled:
            self.arm(reminder)
        else:
            logger.info("Reminder retired", extra={"reminder_id": reminder.id})
        return reminder

    async def toggle_enable(self, reminder_id: str) -> Reminder:
        async with self.lock:
            reminder = self._require(reminder_id)
            if reminder.enabled:
                reminder.enabled = False
                await self._persist(reminder)
                self.disarm(reminder_id)
            else:
                reminder.enabled = True
                self.reset_occurrence(reminder)
                await self._persist(reminder)
                self.arm(reminder)
            self.failures.pop(reminder_id, None)
            return reminder

    async def reconcile_on_startup(self, reminders: Sequence[Reminder] | None = None) -> int:
        """Arm every enabled reminder at its persisted ``next_fire_time``."""
        async with self.lock:
            if reminders is None:
                reminders = await self.repository.load()
            armed = 0
            for reminder in reminders:
                if reminder.enabled:
                    self.arm(reminder)
                    armed += 1
            await self.sync_mirror()
        logger.info("Reminders restored", extra={"armed": armed, "total": len(reminders)})
        return armed

    async def report_external_fire(self, reminder_id: str, fired_at: int) -> Reminder | None:
        """Fold a fire performed by the background channel into local state.

        The local timer is only replaced once the advanced record is stored; a
        failed write keeps the current timer and is recorded in ``failures``.
        Returns ``None`` when nothing was applied.
        """
        async with self.lock:
            reminder = self.repository.get(reminder_id)
            if reminder is None:
                logger.warning("Background fire for unknown reminder", extra={"reminder_id": reminder_id})
                return None

            reminder.history.append(
                HistoryEntry(fired_at=fired_at, message=reminder.message, source=FireSource.BACKGROUND)
            )
            current = reminder.enabled and fired_at + self.background_allowance_ms >= reminder.next_fire_time
            if current:
                self._advance(reminder)

            try:
                await self._persist(reminder)
            except AppError as exc:
                self._record_failure(reminder_id, exc)
                return None

            if current:
                self.disarm(reminder_id)
                if reminder.enabled:
                    self.arm(reminder)
            return reminder

    async def sync_mirror(self) -> None:
        if self.mirror is None:
            return
        entries = [
            BackgroundEntry(
                id=item.id,
                message=item.message,
                next_fire_time=item.next_fire_time,
                notify_channel=item.notify_channel,
            )
            for item in self.repository.list_all()
            if item.enabled
        ]
        try:
            await self.mirror.publish(entries)
        except Exception as exc:
            logger.warning("Background mirror update failed", extra={"error": str(exc)})

    async def shutdown(self) -> None:
        tasks = [task for _, task in self._timers.values()]
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _require(self, reminder_id: str) -> Reminder:
        reminder = self.repository.get(reminder_id)
        if reminder is None:
            raise NotFoundError("Reminder not found", details={"id": reminder_id})
        return reminder

    def _advance(self, reminder: Reminder) -> None:
        schedule = reminder.schedule
        if isinstance(schedule, RelativeDelay):
            if schedule.remaining_repeats > 1:
                schedule.remaining_repeats -= 1
                reminder.next_fire_time = self.next_fire_time(reminder)
            else:
                reminder.enabled = False
        elif schedule.is_recurring:
            # Never before the occurrence just fired, even if the timer woke early.
            reference = max(self.clock(), reminder.next_fire_time)
            reminder.next_fire_time = self.next_fire_time(reminder, reference)
        else:
            reminder.enabled = False

    async def _present(self, reminder: Reminder) -> None:
        try:
            ok = await self.notifier.present(reminder)
        except Exception as exc:
            logger.warning("Reminder presentation raised", extra={"reminder_id": reminder.id, "error": str(exc)})
            ok = False
        if not ok:
            logger.warning("Reminder presentation failed", extra={"reminder_id": reminder.id})

        if reminder.sound_on:
            try:
                await self.notifier.play_sound(SoundKind.DING, self.sound_volume, self.sound_muted)
            except Exception as exc:
                logger.warning("Reminder sound failed", extra={"reminder_id": reminder.id, "error": str(exc)})

    async def _persist(self, reminder: Reminder) -> None:
        await self.repository.update(reminder)
        await self.sync_mirror()

    async def _run_timer(self, reminder_id: str, generation: int, fire_at: int) -> None:
        delay_ms = fire_at - self.clock()
        while delay_ms > 0:
            await self.sleep(delay_ms / 1000)
            delay_ms = fire_at - self.clock()

        async with self.lock:
            entry = self._timers.get(reminder_id)
            if entry is None or entry[0] != generation:
                return
            del self._timers[reminder_id]

            reminder = self.repository.get(reminder_id)
            if reminder is None or not reminder.enabled:
                return
            try:
                await self.on_expire(reminder)
            except AppError as exc:
                self._record_failure(reminder_id, exc)

    def _record_failure(self, reminder_id: str, exc: AppError) -> None:
        self.failures[reminder_id] = exc
        logger.error(
            "Reminder can no longer be scheduled",
            extra={"reminder_id": reminder_id, "code": exc.code, "error": exc.message},
        )
        if self.on_error is not None:
            self.on_error(reminder_id, exc)

    @staticmethod
    def _timer_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Reminder timer crashed", exc_info=exc, extra={"task": task.get_name()})
