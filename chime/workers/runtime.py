from __future__ import annotations

from redis.asyncio import Redis

from chime.core.config import Settings
from chime.core.enums import StorageBackend
from chime.db.storage import JsonFileStorage, MemoryStorage, RedisStorage, ReminderStorage
from chime.integrations.background import RedisBackgroundMirror
from chime.integrations.telegram_client import get_bot
from chime.services.notifier import BellSoundPlayer, ChannelNotifier, ConsolePopupSink, TelegramSink


def needs_redis(settings: Settings) -> bool:
    return settings.storage_backend == StorageBackend.REDIS or settings.background_enabled


def open_redis(settings: Settings) -> Redis:
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


def build_storage(settings: Settings, redis: Redis | None = None) -> ReminderStorage:
    if settings.storage_backend == StorageBackend.REDIS:
        if redis is None:
            raise RuntimeError("Redis storage selected but no redis client was opened")
        return RedisStorage(redis, settings.redis_key)
    if settings.storage_backend == StorageBackend.MEMORY:
        return MemoryStorage()
    return JsonFileStorage(settings.storage_path)


def build_mirror(settings: Settings, redis: Redis | None = None) -> RedisBackgroundMirror | None:
    if not settings.background_enabled or redis is None:
        return None
    return RedisBackgroundMirror(redis, settings.background_key_prefix)


def build_notifier(settings: Settings) -> ChannelNotifier:
    bot = get_bot()
    system = None
    if bot is not None and settings.telegram_chat_id is not None:
        system = TelegramSink(bot, settings.telegram_chat_id)
    return ChannelNotifier(system=system, popup=ConsolePopupSink(), sound=BellSoundPlayer())
