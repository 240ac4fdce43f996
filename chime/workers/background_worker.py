from __future__ import annotations

import asyncio
import logging

from chime.core.clock import now_ms
from chime.core.config import get_settings
from chime.core.logging import configure_logging
from chime.integrations.background import deliver_due
from chime.integrations.telegram_client import close_bot
from chime.workers.runtime import build_mirror, build_notifier, open_redis

logger = logging.getLogger(__name__)


async def run_background_delivery(once: bool = False) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.background_enabled:
        raise RuntimeError("BACKGROUND_ENABLED is not configured")

    redis = open_redis(settings)
    mirror = build_mirror(settings, redis)
    notifier = build_notifier(settings)
    logger.info("Background delivery started")
    try:
        while True:
            try:
                reports = await deliver_due(mirror, notifier, now_ms(), settings.background_allowance_ms)
                if reports:
                    logger.info("Background delivery fired reminders", extra={"count": len(reports)})
            except Exception:
                logger.exception("Background iteration failed")
            if once:
                break
            await asyncio.sleep(settings.background_poll_interval_sec)
    finally:
        await close_bot()
        await redis.close()


if __name__ == "__main__":
    asyncio.run(run_background_delivery())
