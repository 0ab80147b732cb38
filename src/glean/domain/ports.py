"""
Ports (interfaces) for persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime

from .models import DailyStat, ReviewEvent, ReviewSessionRecord, VocabularyWord


class VocabularyRepository(ABC):
    """
    Port for storing vocabulary, daily statistics and review history.

    Key-value semantics keyed by (word, language) for words and by
    (date, language) for daily stats; append-only semantics for review events
    and session records. A language of None means "all languages".

    Implementations:
        - InMemoryRepository: Process-local dictionaries.
        - SqliteRepository: A single SQLite database file.

    Failures of the underlying store are raised as StorageFailure.
    """

    # ---------- Vocabulary ----------

    @abstractmethod
    async def get_word(self, word: str, language: str) -> VocabularyWord | None:
        """Fetch a word by its normalized key, or None if absent."""

    @abstractmethod
    async def put_word(self, vocab: VocabularyWord) -> None:
        """Insert or replace a word (card, contexts and flags)."""

    @abstractmethod
    async def scan_words(self, language: str | None = None) -> list[VocabularyWord]:
        """Return every stored word, optionally filtered by language."""

    @abstractmethod
    async def words_due(
        self, language: str | None, now: datetime
    ) -> list[VocabularyWord]:
        """Return non-ignored words whose card is due at or before `now`."""

    # ---------- Daily stats ----------

    @abstractmethod
    async def get_daily_stat(self, day: date, language: str) -> DailyStat | None:
        """Fetch the stat row for (day, language), or None if absent."""

    @abstractmethod
    async def put_daily_stat(self, stat: DailyStat) -> None:
        """Insert or replace a stat row."""

    @abstractmethod
    async def daily_stats(
        self,
        language: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DailyStat]:
        """Return stat rows in the inclusive date range, sorted by date ascending."""

    # ---------- Review history ----------

    @abstractmethod
    async def append_review_event(self, event: ReviewEvent) -> None:
        """Append a review event."""

    @abstractmethod
    async def review_events(
        self, language: str | None = None, limit: int | None = None
    ) -> list[ReviewEvent]:
        """Return review events, newest first."""

    @abstractmethod
    async def append_session_record(self, record: ReviewSessionRecord) -> None:
        """Append a completed-session record."""

    @abstractmethod
    async def session_records(
        self, language: str | None = None
    ) -> list[ReviewSessionRecord]:
        """Return session records, newest first."""

    # ---------- Lifecycle ----------

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Group writes so they are applied together or not at all.

        Re-entrant: nested transactions join the outermost one.
        """

    @abstractmethod
    async def wipe(self) -> None:
        """Delete all stored data."""

    async def close(self) -> None:
        """Release resources held by the adapter."""
        return None
