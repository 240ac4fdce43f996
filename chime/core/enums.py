from enum import Enum


class Recurrence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class NotifyChannel(str, Enum):
    BROWSER = "browser"
    POPUP = "popup"
    BOTH = "both"


class FireSource(str, Enum):
    SCHEDULER = "scheduler"
    BACKGROUND = "background"


class SoundKind(str, Enum):
    DING = "ding"


class StorageBackend(str, Enum):
    JSON = "json"
    REDIS = "redis"
    MEMORY = "memory"
