"""Best-effort delivery while the primary scheduler process is not running.

The primary process publishes a snapshot of its enabled reminders; a periodic
background job presents the ones that are due and queues a fire report for each.
The primary process drains those reports and folds them into its own state.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol

from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis

from chime.schemas.reminder import BackgroundEntry, FireReport

if TYPE_CHECKING:
    from chime.services.notifier import Notifier

logger = logging.getLogger(__name__)

_entries_adapter = TypeAdapter(list[BackgroundEntry])


class BackgroundMirror(Protocol):
    async def publish(self, entries: list[BackgroundEntry]) -> None: ...

    async def snapshot(self) -> list[BackgroundEntry]: ...

    async def claim(self, entry: BackgroundEntry) -> bool: ...

    async def report_fire(self, report: FireReport) -> None: ...

    async def drain_reports(self) -> list[FireReport]: ...


class RedisBackgroundMirror:
    def __init__(self, redis: Redis, key_prefix: str = "chime:background", claim_ttl_sec: int = 86400) -> None:
        self.redis = redis
        self.key_prefix = key_prefix
        self.claim_ttl_sec = claim_ttl_sec

    @property
    def snapshot_key(self) -> str:
        return f"{self.key_prefix}:snapshot"

    @property
    def reports_key(self) -> str:
        return f"{self.key_prefix}:fired"

    def _claim_key(self, entry: BackgroundEntry) -> str:
        return f"{self.key_prefix}:lock:{entry.id}:{entry.next_fire_time}"

    async def publish(self, entries: list[BackgroundEntry]) -> None:
        payload = _entries_adapter.dump_json(entries).decode("utf-8")
        await self.redis.set(self.snapshot_key, payload)

    async def snapshot(self) -> list[BackgroundEntry]:
        raw = await self.redis.get(self.snapshot_key)
        if not raw:
            return []
        try:
            return _entries_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Invalid background snapshot in redis key %s", self.snapshot_key)
            return []

    async def claim(self, entry: BackgroundEntry) -> bool:
        return bool(await self.redis.set(self._claim_key(entry), "1", ex=self.claim_ttl_sec, nx=True))

    async def report_fire(self, report: FireReport) -> None:
        await self.redis.rpush(self.reports_key, report.model_dump_json())

    async def drain_reports(self) -> list[FireReport]:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrange(self.reports_key, 0, -1)
            pipe.delete(self.reports_key)
            raw_items, _ = await pipe.execute()

        reports: list[FireReport] = []
        for raw in raw_items:
            try:
                reports.append(FireReport.model_validate(json.loads(raw)))
            except (json.JSONDecodeError, ValidationError):
                logger.warning("Dropping malformed fire report", extra={"raw": str(raw)[:200]})
        return reports


async def deliver_due(
    mirror: BackgroundMirror,
    notifier: Notifier,
    now: int,
    allowance_ms: int = 5000,
) -> list[FireReport]:
    """Present every mirrored reminder due within ``allowance_ms`` of ``now``."""
    reports: list[FireReport] = []
    for entry in await mirror.snapshot():
        if entry.next_fire_time > now + allowance_ms:
            continue
        if not await mirror.claim(entry):
            continue

        ok = await notifier.present(entry)
        if not ok:
            logger.warning("Background presentation failed", extra={"reminder_id": entry.id})
        report = FireReport(id=entry.id, fired_at=now)
        await mirror.report_fire(report)
        reports.append(report)
    return reports
