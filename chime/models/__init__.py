from chime.models.reminder import AbsoluteTime, HistoryEntry, RelativeDelay, Reminder

__all__ = [
    "AbsoluteTime",
    "HistoryEntry",
    "RelativeDelay",
    "Reminder",
]
