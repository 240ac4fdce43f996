from chime.services.reminders import ReminderService
from chime.services.scheduler import ReminderScheduler

__all__ = [
    "ReminderScheduler",
    "ReminderService",
]
