import json

import pytest

from chime.core.enums import Recurrence
from chime.core.exceptions import ConflictError, NotFoundError, PersistenceError
from chime.db.storage import JsonFileStorage, MemoryStorage
from chime.models.reminder import AbsoluteTime, HistoryEntry, RelativeDelay, Reminder
from chime.repositories.reminder import ReminderRepository


class BrokenStorage(MemoryStorage):
    async def save(self, records):
        raise OSError("read-only file system")


def make_reminder(reminder_id: str = "r_1", **overrides) -> Reminder:
    data = {
        "id": reminder_id,
        "message": "Water the plants",
        "schedule": AbsoluteTime(hour=8, minute=30, recurrence=Recurrence.WEEKLY, weekdays=[0, 6]),
        "next_fire_time": 1_800_000_000_000,
        "created_at": 1_790_000_000_000,
    }
    data.update(overrides)
    return Reminder(**data)


@pytest.mark.asyncio
async def test_create_rejects_duplicate_id():
    repository = ReminderRepository(MemoryStorage())
    await repository.create(make_reminder("r_1"))

    with pytest.raises(ConflictError):
        await repository.create(make_reminder("r_1", message="Other"))

    assert [item.id for item in repository.list_all()] == ["r_1"]


@pytest.mark.asyncio
async def test_update_and_delete_unknown_id_raise_not_found():
    repository = ReminderRepository(MemoryStorage())

    with pytest.raises(NotFoundError):
        await repository.update(make_reminder("r_missing"))
    with pytest.raises(NotFoundError):
        await repository.delete("r_missing")


@pytest.mark.asyncio
async def test_returned_records_are_copies():
    repository = ReminderRepository(MemoryStorage())
    await repository.create(make_reminder())

    copy = repository.get("r_1")
    copy.history.append(HistoryEntry(fired_at=1, message="x"))

    assert repository.get("r_1").history == []


@pytest.mark.asyncio
async def test_failed_write_raises_and_keeps_previous_state():
    repository = ReminderRepository(BrokenStorage())

    with pytest.raises(PersistenceError) as exc_info:
        await repository.create(make_reminder())

    assert "read-only" in exc_info.value.details["error"]
    assert repository.list_all() == []


@pytest.mark.asyncio
async def test_json_file_round_trip_is_a_no_op(tmp_path):
    path = tmp_path / "reminders.json"
    repository = ReminderRepository(JsonFileStorage(path))
    await repository.create(make_reminder("r_1"))
    relative = make_reminder(
        "r_2",
        schedule=RelativeDelay(hours=1, repeat_count=3, remaining_repeats=2),
        history=[HistoryEntry(fired_at=1_799_000_000_000, message="Water the plants")],
    )
    await repository.create(relative)
    before = path.read_bytes()

    reopened = ReminderRepository(JsonFileStorage(path))
    await reopened.save(await reopened.load())

    assert path.read_bytes() == before
    assert reopened.get("r_2") == relative


@pytest.mark.asyncio
async def test_load_skips_malformed_and_duplicate_records(tmp_path):
    good = make_reminder("r_ok").model_dump(mode="json")
    path = tmp_path / "reminders.json"
    path.write_text(json.dumps([good, {"id": "r_bad", "message": ""}, good, "junk"]), encoding="utf-8")

    items = await ReminderRepository(JsonFileStorage(path)).load()

    assert [item.id for item in items] == ["r_ok"]


@pytest.mark.asyncio
async def test_missing_or_corrupt_file_loads_empty(tmp_path):
    assert await JsonFileStorage(tmp_path / "absent.json").load() == []

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")
    assert await JsonFileStorage(corrupt).load() == []


@pytest.mark.asyncio
async def test_file_with_invalid_utf8_loads_empty(tmp_path):
    path = tmp_path / "reminders.json"
    path.write_bytes(b'[{"id": "r_1", "message": "\xff\xfe"}]')

    assert await JsonFileStorage(path).load() == []
    assert await ReminderRepository(JsonFileStorage(path)).load() == []
