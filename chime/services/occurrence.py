"""Next-occurrence arithmetic for reminder schedules.

All instants are epoch milliseconds. Absolute schedules are evaluated on the
calendar of the reminder's zone: a fixed offset when the reminder carries
``timezone_offset_hours``, otherwise the configured default zone, otherwise the
host local clock. The returned instant is always strictly after the reference.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from chime.core.clock import from_ms, to_ms
from chime.core.config import get_settings
from chime.core.enums import Recurrence
from chime.core.exceptions import InvariantViolation
from chime.models.reminder import AbsoluteTime, RelativeDelay

logger = logging.getLogger(__name__)

WEEKLY_SCAN_DAYS = 14


def default_zone() -> tzinfo | None:
    name = get_settings().default_timezone
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown default timezone, using host local time", extra={"timezone": name})
        return None


def schedule_zone(schedule: AbsoluteTime, fallback: tzinfo | None = None) -> tzinfo | None:
    """Zone for calendar arithmetic; ``None`` means the host local clock."""
    if schedule.timezone_offset_hours is not None:
        return timezone(timedelta(hours=schedule.timezone_offset_hours))
    return fallback if fallback is not None else default_zone()


def js_weekday(day: date) -> int:
    # 0 = Sunday .. 6 = Saturday
    return (day.weekday() + 1) % 7


def _local(reference_ms: int, zone: tzinfo | None) -> datetime:
    if zone is None:
        return datetime.fromtimestamp(reference_ms / 1000)
    return from_ms(reference_ms, zone)


def _at(day: date, schedule: AbsoluteTime, zone: tzinfo | None) -> int:
    candidate = datetime.combine(day, time(schedule.hour, schedule.minute), tzinfo=zone)
    if zone is None:
        return round(candidate.timestamp() * 1000)
    return to_ms(candidate)


def _month_day(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_relative(schedule: RelativeDelay, reference_ms: int) -> int:
    return reference_ms + schedule.delay_ms


def next_daily(schedule: AbsoluteTime, reference_ms: int, zone: tzinfo | None) -> int:
    today = _local(reference_ms, zone).date()
    candidate = _at(today, schedule, zone)
    if candidate <= reference_ms:
        candidate = _at(today + timedelta(days=1), schedule, zone)
    return candidate


def next_weekly(schedule: AbsoluteTime, reference_ms: int, zone: tzinfo | None) -> int:
    today = _local(reference_ms, zone).date()
    weekdays = set(schedule.weekdays)
    for offset in range(WEEKLY_SCAN_DAYS):
        day = today + timedelta(days=offset)
        candidate = _at(day, schedule, zone)
        if candidate > reference_ms and js_weekday(day) in weekdays:
            return candidate
    raise InvariantViolation(
        "Weekly scan found no matching weekday",
        details={"weekdays": sorted(weekdays), "reference": reference_ms},
    )


def next_monthly(schedule: AbsoluteTime, reference_ms: int, zone: tzinfo | None) -> int:
    if schedule.month_day is None:
        raise InvariantViolation("Monthly schedule without a day of month")
    local_now = _local(reference_ms, zone)
    candidate = _at(_month_day(local_now.year, local_now.month, schedule.month_day), schedule, zone)
    if candidate <= reference_ms:
        year, month = (local_now.year + 1, 1) if local_now.month == 12 else (local_now.year, local_now.month + 1)
        candidate = _at(_month_day(year, month, schedule.month_day), schedule, zone)
    return candidate


def compute_next(schedule: RelativeDelay | AbsoluteTime, reference_ms: int, zone: tzinfo | None = None) -> int:
    if isinstance(schedule, RelativeDelay):
        return next_relative(schedule, reference_ms)

    resolved = schedule_zone(schedule, zone)
    if schedule.recurrence == Recurrence.WEEKLY:
        return next_weekly(schedule, reference_ms, resolved)
    if schedule.recurrence == Recurrence.MONTHLY:
        return next_monthly(schedule, reference_ms, resolved)
    return next_daily(schedule, reference_ms, resolved)
