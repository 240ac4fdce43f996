from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from chime.core.enums import NotifyChannel
from chime.models.reminder import Schedule


class ReminderCreate(BaseModel):
    message: str = Field(min_length=1, max_length=1000)
    schedule: Schedule
    notify_channel: NotifyChannel = NotifyChannel.BOTH
    sound_on: bool = True

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class ReminderUpdate(BaseModel):
    message: str | None = Field(default=None, min_length=1, max_length=1000)
    schedule: Schedule | None = None
    notify_channel: NotifyChannel | None = None
    sound_on: bool | None = None

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class BackgroundEntry(BaseModel):
    """Slice of an enabled reminder handed to the background delivery channel."""

    id: str
    message: str
    next_fire_time: int
    notify_channel: NotifyChannel


class FireReport(BaseModel):
    id: str
    fired_at: int
