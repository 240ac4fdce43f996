import pytest

from chime.core.enums import NotifyChannel, Recurrence
from chime.core.exceptions import NotFoundError, ValidationAppError
from chime.schemas.reminder import ReminderCreate
from tests.conftest import FRIDAY_10AM, settle


@pytest.mark.asyncio
async def test_create_accepts_model_payload_and_persists(service, storage):
    payload = ReminderCreate.model_validate(
        {
            "message": "Pay rent",
            "schedule": {
                "kind": "absolute_time",
                "hour": 9,
                "minute": 0,
                "recurrence": "monthly",
                "month_day": 1,
                "timezone_offset_hours": 0,
            },
            "notify_channel": "popup",
            "sound_on": False,
        }
    )

    reminder = await service.create_reminder(payload)

    assert reminder.id.startswith("r_")
    assert reminder.notify_channel == NotifyChannel.POPUP
    assert reminder.sound_on is False
    assert reminder.schedule.recurrence == Recurrence.MONTHLY
    assert [record["id"] for record in await storage.load()] == [reminder.id]


@pytest.mark.asyncio
async def test_ids_are_unique(service):
    payload = {"message": "Ping", "schedule": {"kind": "relative_delay", "minutes": 1}}
    first = await service.create_reminder(payload)
    second = await service.create_reminder(payload)
    assert first.id != second.id


@pytest.mark.asyncio
async def test_relative_create_initializes_remaining_repeats(service):
    reminder = await service.create_reminder(
        {
            "message": "Drink water",
            "schedule": {"kind": "relative_delay", "hours": 1, "repeat_count": 4, "remaining_repeats": 0},
        }
    )
    assert reminder.schedule.remaining_repeats == 4
    assert reminder.next_fire_time == FRIDAY_10AM + 3_600_000


@pytest.mark.asyncio
async def test_update_message_keeps_schedule(service, scheduler):
    reminder = await service.create_reminder(
        {"message": "Ping", "schedule": {"kind": "relative_delay", "minutes": 30}}
    )

    updated = await service.update_reminder(reminder.id, {"message": "  Pong "})

    assert updated.message == "Pong"
    assert updated.next_fire_time == reminder.next_fire_time
    assert scheduler.is_armed(reminder.id)


@pytest.mark.asyncio
async def test_update_schedule_recomputes_and_rearms(service, scheduler, timers, clock):
    reminder = await service.create_reminder(
        {"message": "Ping", "schedule": {"kind": "relative_delay", "minutes": 30}}
    )
    await settle()
    clock.advance(60_000)

    updated = await service.update_reminder(
        reminder.id, {"schedule": {"kind": "relative_delay", "minutes": 10, "repeat_count": 2}}
    )
    await settle()

    assert updated.next_fire_time == FRIDAY_10AM + 60_000 + 600_000
    assert updated.schedule.remaining_repeats == 2
    assert [seconds for seconds, _ in timers.pending] == [600.0]


@pytest.mark.asyncio
async def test_update_rejects_invalid_payload(service):
    reminder = await service.create_reminder(
        {"message": "Ping", "schedule": {"kind": "relative_delay", "minutes": 30}}
    )

    with pytest.raises(ValidationAppError):
        await service.update_reminder(reminder.id, {"message": ""})
    with pytest.raises(NotFoundError):
        await service.update_reminder("r_missing", {"message": "x"})


@pytest.mark.asyncio
async def test_delete_releases_timer_and_record(service, scheduler, timers, storage, notifier):
    reminder = await service.create_reminder(
        {"message": "Ping", "schedule": {"kind": "relative_delay", "minutes": 5}}
    )
    await settle()

    await service.delete_reminder(reminder.id)
    await settle()

    assert not scheduler.is_armed(reminder.id)
    assert timers.pending == []
    assert await storage.load() == []
    assert notifier.presented == []
    with pytest.raises(NotFoundError):
        service.get_reminder(reminder.id)
    with pytest.raises(NotFoundError):
        await service.delete_reminder(reminder.id)


@pytest.mark.asyncio
async def test_toggle_unknown_reminder_raises(service):
    with pytest.raises(NotFoundError):
        await service.toggle_reminder("r_missing")
