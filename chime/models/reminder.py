from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from chime.core.enums import FireSource, NotifyChannel, Recurrence


class RelativeDelay(BaseModel):
    kind: Literal["relative_delay"] = "relative_delay"
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)
    repeat_count: int = Field(default=0, ge=0)
    remaining_repeats: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_delay(self) -> "RelativeDelay":
        if self.hours == 0 and self.minutes == 0:
            raise ValueError("delay must be at least one minute")
        return self

    @property
    def delay_ms(self) -> int:
        return (self.hours * 60 + self.minutes) * 60 * 1000


class AbsoluteTime(BaseModel):
    kind: Literal["absolute_time"] = "absolute_time"
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    recurrence: Recurrence = Recurrence.NONE
    weekdays: list[int] = Field(default_factory=list)
    month_day: int | None = Field(default=None, ge=1, le=31)
    timezone_offset_hours: float | None = Field(default=None, ge=-12, le=14)

    @field_validator("weekdays")
    @classmethod
    def normalize_weekdays(cls, value: list[int]) -> list[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("weekdays must be within 0 (Sunday) .. 6 (Saturday)")
        return sorted(set(value))

    @model_validator(mode="after")
    def check_recurrence(self) -> "AbsoluteTime":
        if self.recurrence == Recurrence.WEEKLY and not self.weekdays:
            raise ValueError("weekly recurrence needs at least one weekday")
        if self.recurrence == Recurrence.MONTHLY and self.month_day is None:
            raise ValueError("monthly recurrence needs a day of month")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE


Schedule = Annotated[Union[RelativeDelay, AbsoluteTime], Field(discriminator="kind")]


class HistoryEntry(BaseModel):
    fired_at: int
    message: str
    source: FireSource = FireSource.SCHEDULER


class Reminder(BaseModel):
    """Durable reminder record.

    ``next_fire_time`` and ``created_at`` are epoch milliseconds. ``history`` is an
    observational log and is never consulted when scheduling.
    """

    model_config = {"validate_assignment": True}

    id: str = Field(frozen=True)
    message: str = Field(min_length=1)
    schedule: Schedule
    next_fire_time: int
    enabled: bool = True
    notify_channel: NotifyChannel = NotifyChannel.BOTH
    sound_on: bool = True
    created_at: int
    history: list[HistoryEntry] = Field(default_factory=list)
