"""
Review session controller.

Walks a review queue, applies ratings through the CardScheduler, persists the
results, and handles mid-session ignores and re-insertion of failed cards.

The queue is an arena of entries plus an ordered list of arena indices and a
position pointer. Re-insertion appends to the arena and splices an index into
the order; ignoring filters indices after the pointer. Entries before the
pointer are never touched.
"""

import logging
from datetime import datetime
from enum import Enum

from ulid import ULID

from glean.application.queue_builder import QueueBuildResult
from glean.application.scheduler import CardScheduler, SchedulingOption
from glean.application.stats.service import StatsAggregator
from glean.application.utils.time import Clock, as_utc, local_date, utcnow
from glean.application.vocabulary_store import VocabularyStore
from glean.domain.constants import ALL_LANGUAGES, DEFAULT_REQUEUE_OFFSET
from glean.domain.errors import SessionStateError
from glean.domain.models import (
    Bucket,
    Context,
    MemoryCard,
    QueueEntry,
    Rating,
    ReviewEvent,
    ReviewSessionRecord,
    StatField,
    normalize_key,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETE = "complete"


class ReviewSession:
    """
    Stateful controller for one pass over a review queue.

    States: NOT_STARTED -> ACTIVE -> COMPLETE. An empty queue starts out
    COMPLETE. A session abandoned before completion writes no record.
    """

    def __init__(
        self,
        queue: QueueBuildResult | list[QueueEntry],
        store: VocabularyStore,
        stats: StatsAggregator,
        scheduler: CardScheduler,
        language: str = ALL_LANGUAGES,
        requeue_offset: int = DEFAULT_REQUEUE_OFFSET,
        clock: Clock = utcnow,
    ):
        """
        Args:
            queue: Entries to present, in order.
            store: Vocabulary store that receives card updates and ignores.
            stats: Aggregator that receives review events and session records.
            scheduler: Scheduler used to rate cards.
            language: Language the session was built for ("all" for every language).
            requeue_offset: How many positions ahead an Again card resurfaces.
            clock: Source of the current time when callers do not pass `now`.
        """
        if requeue_offset < 1:
            raise ValueError(f"requeue_offset must be at least 1, got {requeue_offset}")

        entries = queue.queue if isinstance(queue, QueueBuildResult) else queue
        self._arena: list[QueueEntry] = list(entries)
        self._order: list[int] = list(range(len(self._arena)))
        self._initial_size = len(self._arena)
        self._position = 0
        self._context_index = 0

        self._store = store
        self._stats = stats
        self._scheduler = scheduler
        self._clock = clock
        self.language = language
        self.requeue_offset = requeue_offset

        self.reviewed_count = 0
        self.started_at: datetime | None = None
        self.record: ReviewSessionRecord | None = None
        self.state = SessionState.COMPLETE if not self._arena else SessionState.NOT_STARTED

    # ---------------------------------------------------------------------
    # Views
    # ---------------------------------------------------------------------

    @property
    def queue_size(self) -> int:
        """Number of entries the session was built with."""
        return self._initial_size

    @property
    def queue_length(self) -> int:
        """Current queue length, visited entries and re-insertions included."""
        return len(self._order)

    @property
    def position(self) -> int:
        return self._position

    @property
    def current(self) -> QueueEntry | None:
        if self.state != SessionState.ACTIVE:
            return None
        return self._arena[self._order[self._position]]

    @property
    def context_index(self) -> int:
        return self._context_index

    @property
    def current_context(self) -> Context | None:
        entry = self.current
        if entry is None:
            return None
        contexts = entry.word.context_list()
        if not contexts:
            return None
        return contexts[self._context_index]

    @property
    def new_remaining(self) -> int:
        return self._remaining(Bucket.NEW)

    @property
    def learning_remaining(self) -> int:
        return self._remaining(Bucket.LEARNING)

    @property
    def review_remaining(self) -> int:
        return self._remaining(Bucket.REVIEW)

    def remaining(self) -> list[QueueEntry]:
        """Not-yet-visited entries, current first."""
        return [self._arena[i] for i in self._order[self._position :]]

    def _remaining(self, bucket: Bucket) -> int:
        return sum(1 for i in self._order[self._position :] if self._arena[i].bucket == bucket)

    # ---------------------------------------------------------------------
    # Navigation
    # ---------------------------------------------------------------------

    def start(self, now: datetime | None = None) -> None:
        self._require(SessionState.NOT_STARTED)
        self.started_at = as_utc(now or self._clock())
        self.state = SessionState.ACTIVE
        logger.info(f"Review session started with {self.queue_size} cards ({self.language})")

    def next_context(self) -> Context | None:
        """Show the next example sentence for the current word, without advancing the queue."""
        self._require(SessionState.ACTIVE)
        if self._context_index < self.current.word.times_seen - 1:
            self._context_index += 1
        return self.current_context

    def prev_context(self) -> Context | None:
        self._require(SessionState.ACTIVE)
        if self._context_index > 0:
            self._context_index -= 1
        return self.current_context

    def preview(self, now: datetime | None = None) -> list[SchedulingOption]:
        """Projected outcome of each rating for the current card."""
        self._require(SessionState.ACTIVE)
        return self._scheduler.preview_all(self.current.word.card, now or self._clock())

    # ---------------------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------------------

    async def rate(self, rating: Rating | int | str, now: datetime | None = None) -> MemoryCard:
        """
        Rate the current card and advance.

        Card update, review event, counters and (when this completes the session)
        the session record are written in one transaction. If any write fails the
        session stays on this card and the error propagates.

        Returns:
            The updated memory card.
        """
        self._require(SessionState.ACTIVE)
        rating = Rating.parse(rating)
        now = as_utc(now or self._clock())

        entry = self.current
        vocab = entry.word
        new_card = self._scheduler.schedule(vocab.card, rating, now)
        newly_mastered = not self._stats.is_mastered(vocab.card) and self._stats.is_mastered(
            new_card
        )

        # Plan the queue change first; apply it only after the writes succeed
        order = list(self._order)
        requeued = None
        if rating == Rating.AGAIN:
            requeued = QueueEntry(word=vocab, bucket=Bucket.LEARNING)
            order.insert(min(self._position + self.requeue_offset, len(order)), len(self._arena))
        next_position = self._position + 1
        completes = next_position >= len(order)

        day = local_date(now, self._stats.tz)
        event = ReviewEvent(
            id=str(ULID()),
            word=vocab.word,
            language=vocab.language,
            rating=rating,
            reviewed_at=now,
            date=day,
        )
        record = self._make_record(len(order), now) if completes else None

        async with self._store.transaction():
            await self._store.update_card(vocab.word, vocab.language, new_card)
            await self._stats.record_review(event)
            if newly_mastered:
                await self._stats.record_daily(vocab.language, day, StatField.WORDS_MASTERED)
            if record is not None:
                await self._stats.record_session(record)

        vocab.card = new_card
        if requeued is not None:
            self._arena.append(requeued)
        self._order = order
        self._position = next_position
        self._context_index = 0
        self.reviewed_count += 1

        logger.debug(f"Rated {vocab.word} ({vocab.language}) {rating.label}")
        if record is not None:
            self._complete(record)
        return new_card

    async def ignore(
        self,
        word: str | None = None,
        language: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Ignore a word (the current one by default) and drop it from the rest of the queue.

        Ignored words do not count toward reviewed_count. If nothing is left to
        review the session completes with word_count equal to the words reviewed.

        Returns:
            The word's new ignored flag.
        """
        self._require(SessionState.ACTIVE)
        now = as_utc(now or self._clock())

        current = self.current
        if word is None:
            key = current.key
        else:
            key = normalize_key(word, language or current.word.language)

        kept = [i for i in self._order[self._position :] if self._arena[i].key != key]
        order = self._order[: self._position] + kept
        completes = self._position >= len(order)
        record = self._make_record(self.reviewed_count, now) if completes else None

        async with self._store.transaction():
            ignored = await self._store.toggle_ignore(*key)
            if record is not None:
                await self._stats.record_session(record)

        if current.key == key:
            self._context_index = 0
        self._order = order

        if record is not None:
            self._complete(record)
        return ignored

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    def _make_record(self, word_count: int, now: datetime) -> ReviewSessionRecord:
        duration = int((now - self.started_at).total_seconds())
        return ReviewSessionRecord(
            id=str(ULID()),
            language=self.language,
            started_at=self.started_at,
            word_count=word_count,
            duration_seconds=max(0, duration),
        )

    def _complete(self, record: ReviewSessionRecord) -> None:
        self.record = record
        self.state = SessionState.COMPLETE
        logger.info(
            f"Review session complete: {self.reviewed_count} reviewed, "
            f"{record.word_count} presented in {record.duration_seconds}s"
        )

    def _require(self, state: SessionState) -> None:
        if self.state != state:
            raise SessionStateError(
                f"Operation requires a {state.value} session, but it is {self.state.value}"
            )
