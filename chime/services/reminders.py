from __future__ import annotations

import logging
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from chime.core.exceptions import NotFoundError, ValidationAppError
from chime.models.reminder import Reminder
from chime.schemas.reminder import ReminderCreate, ReminderUpdate
from chime.services.scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

PayloadType = TypeVar("PayloadType", bound=BaseModel)


def new_reminder_id() -> str:
    return f"r_{uuid4().hex}"


def validate_payload(model: type[PayloadType], payload: PayloadType | dict[str, Any]) -> PayloadType:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationAppError(
            "Reminder validation failed",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


class ReminderService:
    """Reminder lifecycle operations for UI callers.

    Every mutation runs under the scheduler lock, so it is serialized against
    timer fires.
    """

    def __init__(self, scheduler: ReminderScheduler) -> None:
        self.scheduler = scheduler
        self.reminders = scheduler.repository

    def list_reminders(self) -> list[Reminder]:
        return self.reminders.list_all()

    def get_reminder(self, reminder_id: str) -> Reminder:
        reminder = self.reminders.get(reminder_id)
        if reminder is None:
            raise NotFoundError("Reminder not found", details={"id": reminder_id})
        return reminder

    async def create_reminder(self, payload: ReminderCreate | dict[str, Any]) -> Reminder:
        data = validate_payload(ReminderCreate, payload)

        async with self.scheduler.lock:
            now = self.scheduler.clock()
            reminder = Reminder(
                id=new_reminder_id(),
                message=data.message,
                schedule=data.schedule.model_copy(deep=True),
                next_fire_time=now,
                enabled=True,
                notify_channel=data.notify_channel,
                sound_on=data.sound_on,
                created_at=now,
            )
            self.scheduler.reset_occurrence(reminder)
            await self.reminders.create(reminder)
            await self.scheduler.sync_mirror()
            self.scheduler.arm(reminder)

        logger.info(
            "Reminder created",
            extra={"reminder_id": reminder.id, "next_fire_time": reminder.next_fire_time},
        )
        return reminder

    async def update_reminder(self, reminder_id: str, payload: ReminderUpdate | dict[str, Any]) -> Reminder:
        data = validate_payload(ReminderUpdate, payload)

        async with self.scheduler.lock:
            reminder = self.get_reminder(reminder_id)
            if data.message is not None:
                reminder.message = data.message
            if data.notify_channel is not None:
                reminder.notify_channel = data.notify_channel
            if data.sound_on is not None:
                reminder.sound_on = data.sound_on

            if data.schedule is not None:
                reminder.schedule = data.schedule.model_copy(deep=True)
            # An enabled reminder left without a timer by a failed write restarts from now.
            stalled = reminder.enabled and (
                reminder_id in self.scheduler.failures or not self.scheduler.is_armed(reminder_id)
            )
            reschedule = data.schedule is not None or stalled
            if reschedule:
                self.scheduler.reset_occurrence(reminder)

            await self.reminders.update(reminder)
            await self.scheduler.sync_mirror()
            if reschedule:
                self.scheduler.arm(reminder)
            self.scheduler.failures.pop(reminder_id, None)

        return reminder

    async def delete_reminder(self, reminder_id: str) -> None:
        async with self.scheduler.lock:
            await self.reminders.delete(reminder_id)
            self.scheduler.disarm(reminder_id)
            self.scheduler.failures.pop(reminder_id, None)
            await self.scheduler.sync_mirror()
        logger.info("Reminder deleted", extra={"reminder_id": reminder_id})

    async def toggle_reminder(self, reminder_id: str) -> Reminder:
        return await self.scheduler.toggle_enable(reminder_id)
