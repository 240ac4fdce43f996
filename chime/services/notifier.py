from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Protocol, TextIO, Union

from aiogram import Bot

from chime.core.enums import NotifyChannel, SoundKind
from chime.core.exceptions import PresentationError
from chime.models.reminder import Reminder
from chime.schemas.reminder import BackgroundEntry

logger = logging.getLogger(__name__)

# Anything with id, message and notify_channel can be presented.
Presentable = Union[Reminder, BackgroundEntry]


class Notifier(Protocol):
    async def present(self, reminder: Presentable) -> bool: ...

    async def play_sound(self, kind: SoundKind, volume: float, muted: bool) -> None: ...


class NotificationSink(Protocol):
    async def show(self, reminder: Presentable) -> None: ...


class SoundPlayer(Protocol):
    async def play(self, kind: SoundKind, volume: float) -> None: ...


class ConsolePopupSink:
    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    async def show(self, reminder: Presentable) -> None:
        shown_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.stream.write(f"\U0001F514 {reminder.message}  ({shown_at})\n")
        self.stream.flush()


class TelegramSink:
    def __init__(self, bot: Bot, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def show(self, reminder: Presentable) -> None:
        await self.bot.send_message(chat_id=self.chat_id, text=f"⏰ {reminder.message}")


class BellSoundPlayer:
    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    async def play(self, kind: SoundKind, volume: float) -> None:
        self.stream.write("\a")
        self.stream.flush()


class ChannelNotifier:
    """Routes a fired reminder to the sinks selected by its ``notify_channel``.

    ``browser`` maps to the system sink (an OS-level or push notification),
    ``popup`` to the in-app popup sink and ``both`` to both. A channel without a
    configured sink is skipped. ``present`` returns ``False`` when any attempted
    sink failed; it never raises.
    """

    def __init__(
        self,
        system: NotificationSink | None = None,
        popup: NotificationSink | None = None,
        sound: SoundPlayer | None = None,
    ) -> None:
        self.system = system
        self.popup = popup
        self.sound = sound

    def _sinks_for(self, channel: NotifyChannel) -> list[tuple[str, NotificationSink | None]]:
        sinks: list[tuple[str, NotificationSink | None]] = []
        if channel in (NotifyChannel.BROWSER, NotifyChannel.BOTH):
            sinks.append(("system", self.system))
        if channel in (NotifyChannel.POPUP, NotifyChannel.BOTH):
            sinks.append(("popup", self.popup))
        return sinks

    async def present(self, reminder: Presentable) -> bool:
        ok = True
        for name, sink in self._sinks_for(reminder.notify_channel):
            if sink is None:
                logger.debug("No sink configured for channel", extra={"channel": name, "reminder_id": reminder.id})
                continue
            try:
                await sink.show(reminder)
            except Exception as exc:
                ok = False
                error = PresentationError(details={"channel": name, "error": str(exc)})
                logger.warning(error.message, extra={"reminder_id": reminder.id, **error.details})
        return ok

    async def play_sound(self, kind: SoundKind, volume: float, muted: bool) -> None:
        if self.sound is None or muted or volume <= 0:
            return
        try:
            await self.sound.play(kind, volume)
        except Exception as exc:
            logger.warning("Sound playback failed", extra={"sound": kind.value, "error": str(exc)})
