# Domain Package
from .errors import GleanError, InvalidRating, NotFound, SessionStateError, StorageFailure
from .models import (
    Bucket,
    CardState,
    Context,
    DailyStat,
    MemoryCard,
    QueueEntry,
    Rating,
    ReviewEvent,
    ReviewSessionRecord,
    StatField,
    VocabularyWord,
)
from .ports import VocabularyRepository

__all__ = [
    "Bucket",
    "CardState",
    "Context",
    "DailyStat",
    "GleanError",
    "InvalidRating",
    "MemoryCard",
    "NotFound",
    "QueueEntry",
    "Rating",
    "ReviewEvent",
    "ReviewSessionRecord",
    "SessionStateError",
    "StatField",
    "StorageFailure",
    "VocabularyRepository",
    "VocabularyWord",
]
