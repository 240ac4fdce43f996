from __future__ import annotations

from aiogram import Bot

from chime.core.config import get_settings


_bot: Bot | None = None


def get_bot() -> Bot | None:
    global _bot
    settings = get_settings()
    if not settings.telegram_bot_token:
        return None
    if _bot is None:
        _bot = Bot(token=settings.telegram_bot_token)
    return _bot


async def close_bot() -> None:
    global _bot
    if _bot is not None:
        await _bot.session.close()
        _bot = None
