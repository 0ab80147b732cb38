"""
Metrics calculator for deriving insights from memory cards.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass
from datetime import datetime

from glean.domain.constants import (
    MASTERY_MAX_LAPSES,
    MASTERY_MIN_INTERVAL_DAYS,
)
from glean.domain.models import CardState, MemoryCard, VocabularyWord

# FSRS forgetting curve constants: R(t, S) = (1 + FACTOR * t / S) ** DECAY
FSRS_DECAY = -0.5
FSRS_FACTOR = 19 / 81


@dataclass(frozen=True)
class MasteryPolicy:
    """
    Threshold for calling a word "mastered".

    A card is mastered when it is in REVIEW, its scheduled interval is at least
    `min_interval_days`, and it has lapsed at most `max_lapses` times.
    """

    min_interval_days: float = MASTERY_MIN_INTERVAL_DAYS
    max_lapses: int = MASTERY_MAX_LAPSES

    def is_mastered(self, card: MemoryCard) -> bool:
        return (
            card.state == CardState.REVIEW
            and card.interval_days >= self.min_interval_days
            and card.lapses <= self.max_lapses
        )


@dataclass
class WordMetrics:
    """
    A word's card enriched with computed metrics.
    """

    word: str
    language: str
    state: CardState
    reps: int
    lapses: int
    times_seen: int

    # FSRS core (from card)
    stability: float | None
    difficulty: float | None

    # Computed metrics
    current_retrievability: float | None
    lapse_rate: float | None  # lapses / reps
    days_overdue: int | None  # Negative if not yet due
    mastered: bool


class MetricsCalculator:
    """
    Computes derived metrics from VocabularyWord cards.

    Stateless and side-effect free.
    """

    def __init__(self, policy: MasteryPolicy | None = None):
        self.policy = policy or MasteryPolicy()

    def enrich(self, vocab: VocabularyWord, now: datetime) -> WordMetrics:
        card = vocab.card
        started = card.state != CardState.NEW
        return WordMetrics(
            word=vocab.word,
            language=vocab.language,
            state=card.state,
            reps=card.reps,
            lapses=card.lapses,
            times_seen=vocab.times_seen,
            stability=card.stability if started else None,
            difficulty=card.difficulty if started else None,
            current_retrievability=self.retrievability(card, now),
            lapse_rate=self._compute_lapse_rate(card),
            days_overdue=self._compute_days_overdue(card, now),
            mastered=self.policy.is_mastered(card),
        )

    def retrievability(self, card: MemoryCard, now: datetime) -> float | None:
        """
        Current recall probability using the FSRS power forgetting curve.

        Returns None for cards that were never reviewed.
        """
        if card.last_review is None or card.stability <= 0:
            return None

        days_elapsed = max(0.0, (now - card.last_review).total_seconds() / 86400.0)
        return (1 + FSRS_FACTOR * days_elapsed / card.stability) ** FSRS_DECAY

    def _compute_lapse_rate(self, card: MemoryCard) -> float | None:
        if card.reps == 0:
            return None
        return card.lapses / card.reps

    def _compute_days_overdue(self, card: MemoryCard, now: datetime) -> int | None:
        if card.state == CardState.NEW:
            return None
        return int((now - card.due).total_seconds() // 86400)

