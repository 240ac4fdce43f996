from __future__ import annotations

import logging
from typing import Sequence

from pydantic import ValidationError

from chime.core.exceptions import ConflictError, NotFoundError, PersistenceError
from chime.db.storage import ReminderStorage
from chime.models.reminder import Reminder

logger = logging.getLogger(__name__)


class ReminderRepository:
    """Reminder CRUD over a whole-list storage backend.

    The in-memory list only changes after the backend accepted the new list, so
    the cache never runs ahead of durable state.
    """

    def __init__(self, storage: ReminderStorage) -> None:
        self.storage = storage
        self._items: list[Reminder] = []

    async def load(self) -> list[Reminder]:
        records = await self.storage.load()
        items: list[Reminder] = []
        seen: set[str] = set()
        for record in records:
            try:
                reminder = Reminder.model_validate(record)
            except ValidationError as exc:
                logger.warning("Skipping malformed reminder record", extra={"record_id": record.get("id"), "error": str(exc)})
                continue
            if reminder.id in seen:
                logger.warning("Skipping duplicate reminder id", extra={"record_id": reminder.id})
                continue
            seen.add(reminder.id)
            items.append(reminder)
        self._items = items
        return self.list_all()

    async def save(self, items: Sequence[Reminder]) -> None:
        records = [item.model_dump(mode="json") for item in items]
        try:
            await self.storage.save(records)
        except Exception as exc:
            logger.error("Reminder store write failed", extra={"error": str(exc)})
            raise PersistenceError(details={"error": str(exc)}) from exc
        self._items = [item.model_copy(deep=True) for item in items]

    def list_all(self) -> list[Reminder]:
        return [item.model_copy(deep=True) for item in self._items]

    def get(self, reminder_id: str) -> Reminder | None:
        for item in self._items:
            if item.id == reminder_id:
                return item.model_copy(deep=True)
        return None

    async def create(self, reminder: Reminder) -> Reminder:
        if any(item.id == reminder.id for item in self._items):
            raise ConflictError("Reminder id already exists", details={"id": reminder.id})
        await self.save([*self._items, reminder])
        return reminder

    async def update(self, reminder: Reminder) -> Reminder:
        index = self._index(reminder.id)
        items = list(self._items)
        items[index] = reminder
        await self.save(items)
        return reminder

    async def delete(self, reminder_id: str) -> None:
        index = self._index(reminder_id)
        items = list(self._items)
        del items[index]
        await self.save(items)

    def _index(self, reminder_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.id == reminder_id:
                return index
        raise NotFoundError("Reminder not found", details={"id": reminder_id})
