from __future__ import annotations

import asyncio
import logging

from chime.core.config import get_settings
from chime.core.logging import configure_logging
from chime.integrations.background import BackgroundMirror
from chime.integrations.telegram_client import close_bot
from chime.repositories.reminder import ReminderRepository
from chime.services.scheduler import ReminderScheduler
from chime.workers.runtime import build_mirror, build_notifier, build_storage, needs_redis, open_redis

logger = logging.getLogger(__name__)


async def drain_background_reports(scheduler: ReminderScheduler, mirror: BackgroundMirror) -> int:
    applied = 0
    for report in await mirror.drain_reports():
        try:
            if await scheduler.report_external_fire(report.id, report.fired_at) is not None:
                applied += 1
        except Exception:
            logger.exception("Failed to apply background fire report", extra={"reminder_id": report.id})
    return applied


async def worker_loop() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    redis = open_redis(settings) if needs_redis(settings) else None
    mirror = build_mirror(settings, redis)
    scheduler = ReminderScheduler(
        ReminderRepository(build_storage(settings, redis)),
        build_notifier(settings),
        mirror=mirror,
        sound_volume=settings.sound_volume,
        sound_muted=settings.sound_muted,
        background_allowance_ms=settings.background_allowance_ms,
    )

    await scheduler.reconcile_on_startup()
    logger.info("Reminder worker started")
    try:
        while True:
            if mirror is not None:
                try:
                    applied = await drain_background_reports(scheduler, mirror)
                    if applied:
                        logger.info("Applied background fire reports", extra={"count": applied})
                except Exception:
                    logger.exception("Worker iteration failed")
            await asyncio.sleep(settings.worker_poll_interval_sec)
    finally:
        await scheduler.shutdown()
        await close_bot()
        if redis is not None:
            await redis.close()


if __name__ == "__main__":
    asyncio.run(worker_loop())
