"""
Domain models for vocabulary tracking and review scheduling.

These are pure data structures with no I/O or external dependencies.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum

from .constants import ALL_LANGUAGES
from .errors import InvalidRating


class Rating(IntEnum):
    """Learner's self-assessed recall quality."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """
        Coerce user input into a Rating.

        Accepts Rating members, the integers 1-4 and the names again/hard/good/easy
        (case-insensitive). Anything else raises InvalidRating.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidRating(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidRating(value) from None
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            if key.isdigit():
                return cls.parse(int(key))
        raise InvalidRating(value)


class CardState(IntEnum):
    """Scheduling state of a MemoryCard. Values 1-3 match FSRS."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Bucket(str, Enum):
    """Review queue partition."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"


class StatField(str, Enum):
    """Counters held by a DailyStat row."""

    REVIEW_COUNT = "review_count"
    WORDS_ADDED = "words_added"
    WORDS_MASTERED = "words_mastered"


def normalize_key(word: str, language: str) -> tuple[str, str]:
    """Canonical (word, language) identity: stripped and lowercased."""
    return word.strip().lower(), language.strip().lower()


def language_filter(language: str) -> str | None:
    """Repository filter for a language selector; "all" means no filter."""
    language = language.strip().lower()
    return None if language == ALL_LANGUAGES else language


def sentence_fingerprint(text: str) -> str:
    """Stable content hash of a sentence, insensitive to whitespace runs."""
    normalized = " ".join(text.split())
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MemoryCard:
    """
    Scheduling state attached 1:1 to a VocabularyWord.

    Attributes:
        state: NEW until the first rating, then LEARNING/REVIEW/RELEARNING.
        stability: Days until recall probability drops to the desired retention.
        difficulty: FSRS difficulty (1.0-10.0), 0.0 while NEW.
        due: When the card is next eligible for review.
        last_review: Time of the most recent rating, None while NEW.
        step: Index into the (re)learning steps, None outside (re)learning.
        reps: Number of ratings applied.
        lapses: Number of times a REVIEW card was rated AGAIN.
    """

    state: CardState
    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    last_review: datetime | None = None
    step: int | None = None
    reps: int = 0
    lapses: int = 0

    @classmethod
    def new(cls, now: datetime) -> "MemoryCard":
        return cls(state=CardState.NEW, due=now)

    @property
    def interval_days(self) -> float:
        """Length of the currently scheduled interval in days (0 while NEW)."""
        if self.last_review is None:
            return 0.0
        return (self.due - self.last_review).total_seconds() / 86400.0

    def is_due(self, now: datetime) -> bool:
        return self.due <= now


@dataclass(frozen=True)
class Context:
    """
    One recorded encounter of a word while reading.

    Attributes:
        sentence_id: Fingerprint of the sentence text, used for deduplication.
        sentence_text: The sentence as it appeared on the page.
        sentence_translation: Translation of the whole sentence.
        meaning: The word's meaning in this sentence.
        page_id: Identifier of the page the sentence came from, if any.
        seen_at: When the encounter was recorded.
    """

    sentence_id: str
    sentence_text: str
    sentence_translation: str
    meaning: str
    seen_at: datetime
    page_id: str | None = None

    @classmethod
    def from_sentence(
        cls,
        sentence_text: str,
        sentence_translation: str,
        meaning: str,
        seen_at: datetime,
        page_id: str | None = None,
        sentence_id: str | None = None,
    ) -> "Context":
        """Build a context, fingerprinting the sentence when no id is supplied."""
        return cls(
            sentence_id=sentence_id or sentence_fingerprint(sentence_text),
            sentence_text=sentence_text,
            sentence_translation=sentence_translation,
            meaning=meaning,
            seen_at=seen_at,
            page_id=page_id,
        )


@dataclass
class VocabularyWord:
    """
    A tracked word with its memory card and example contexts.

    Identity is the normalized (word, language) pair. Contexts are an ordered
    mapping from sentence fingerprint to Context, so a sentence is recorded once.
    """

    word: str
    language: str
    added_at: datetime
    card: MemoryCard
    ignored: bool = False
    contexts: dict[str, Context] = field(default_factory=dict)

    def __post_init__(self):
        self.word, self.language = normalize_key(self.word, self.language)

    @property
    def key(self) -> tuple[str, str]:
        return self.word, self.language

    @property
    def times_seen(self) -> int:
        return len(self.contexts)

    def context_list(self) -> list[Context]:
        return list(self.contexts.values())

    def add_context(self, context: Context) -> bool:
        """Record a context unless its sentence is already known. Returns True if added."""
        if context.sentence_id in self.contexts:
            return False
        self.contexts[context.sentence_id] = context
        return True


@dataclass(frozen=True)
class ReviewEvent:
    """
    A single rating application. Append-only.

    Attributes:
        id: ULID of the event.
        word: Normalized word.
        language: Normalized language code.
        rating: Button pressed.
        reviewed_at: Timestamp of the rating.
        date: Calendar date used for daily aggregation.
    """

    id: str
    word: str
    language: str
    rating: Rating
    reviewed_at: datetime
    date: date


@dataclass(frozen=True)
class ReviewSessionRecord:
    """Summary of a completed review session. Append-only."""

    id: str
    language: str
    started_at: datetime
    word_count: int
    duration_seconds: int


@dataclass
class DailyStat:
    """Per-day, per-language counters. All counters only ever grow."""

    date: date
    language: str
    review_count: int = 0
    words_added: int = 0
    words_mastered: int = 0

    @property
    def key(self) -> tuple[date, str]:
        return self.date, self.language

    def get(self, stat_field: StatField) -> int:
        return getattr(self, stat_field.value)

    def add(self, stat_field: StatField, delta: int) -> None:
        setattr(self, stat_field.value, self.get(stat_field) + delta)


@dataclass
class QueueEntry:
    """A word positioned in a review queue, tagged with its bucket."""

    word: VocabularyWord
    bucket: Bucket

    @property
    def key(self) -> tuple[str, str]:
        return self.word.key
