"""Whole-list reminder storage backends.

Every backend exposes the same two coroutines: ``load`` returns the stored list of
keyed reminder records and ``save`` replaces it. Nothing here knows about
scheduling; the repository layer owns identity and validation.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _dumps(records: list[Record]) -> str:
    return json.dumps(records, ensure_ascii=False, separators=(",", ":"))


def _parse(raw: str | bytes | None, source: str) -> list[Record]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in reminder storage", extra={"source": source})
        return []
    if not isinstance(parsed, list):
        logger.warning("Reminder storage does not hold a list", extra={"source": source})
        return []
    return [item for item in parsed if isinstance(item, dict)]


class ReminderStorage(Protocol):
    async def load(self) -> list[Record]: ...

    async def save(self, records: list[Record]) -> None: ...


class MemoryStorage:
    def __init__(self, records: list[Record] | None = None) -> None:
        self._records: list[Record] = copy.deepcopy(records or [])

    async def load(self) -> list[Record]:
        return copy.deepcopy(self._records)

    async def save(self, records: list[Record]) -> None:
        self._records = copy.deepcopy(records)


class JsonFileStorage:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def load(self) -> list[Record]:
        return await asyncio.to_thread(self._read)

    async def save(self, records: list[Record]) -> None:
        await asyncio.to_thread(self._write, _dumps(records))

    def _read(self) -> list[Record]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Reminder storage is not valid UTF-8", extra={"source": str(self.path)})
            return []
        return _parse(raw, str(self.path))

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self.path)


class RedisStorage:
    def __init__(self, redis: Redis, key: str) -> None:
        self.redis = redis
        self.key = key

    async def load(self) -> list[Record]:
        return _parse(await self.redis.get(self.key), self.key)

    async def save(self, records: list[Record]) -> None:
        await self.redis.set(self.key, _dumps(records))
