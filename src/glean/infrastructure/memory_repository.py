"""
In-memory repository: process-local dictionaries.

Used for tests and for the `memory` backend. Objects are copied on the way in
and out, so callers never share mutable state with the store. A transaction
snapshots every table and restores the snapshot on failure.
"""

import copy
from datetime import date, datetime

from glean.domain.models import DailyStat, ReviewEvent, ReviewSessionRecord, VocabularyWord
from glean.domain.ports import VocabularyRepository

from .transactions import TransactionScope


class InMemoryRepository(VocabularyRepository):
    def __init__(self):
        self._words: dict[tuple[str, str], VocabularyWord] = {}
        self._stats: dict[tuple[date, str], DailyStat] = {}
        self._events: list[ReviewEvent] = []
        self._sessions: list[ReviewSessionRecord] = []
        self._snapshot = None
        self._transaction = TransactionScope(self._begin, self._commit, self._rollback)

    # ---------- Vocabulary ----------

    async def get_word(self, word: str, language: str) -> VocabularyWord | None:
        vocab = self._words.get((word, language))
        return copy.deepcopy(vocab) if vocab is not None else None

    async def put_word(self, vocab: VocabularyWord) -> None:
        self._words[vocab.key] = copy.deepcopy(vocab)

    async def scan_words(self, language: str | None = None) -> list[VocabularyWord]:
        return [
            copy.deepcopy(w)
            for w in self._words.values()
            if language is None or w.language == language
        ]

    async def words_due(self, language: str | None, now: datetime) -> list[VocabularyWord]:
        return [
            w
            for w in await self.scan_words(language)
            if not w.ignored and w.card.is_due(now)
        ]

    # ---------- Daily stats ----------

    async def get_daily_stat(self, day: date, language: str) -> DailyStat | None:
        stat = self._stats.get((day, language))
        return copy.copy(stat) if stat is not None else None

    async def put_daily_stat(self, stat: DailyStat) -> None:
        self._stats[stat.key] = copy.copy(stat)

    async def daily_stats(
        self,
        language: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DailyStat]:
        rows = [
            copy.copy(s)
            for s in self._stats.values()
            if (language is None or s.language == language)
            and (start is None or s.date >= start)
            and (end is None or s.date <= end)
        ]
        return sorted(rows, key=lambda s: (s.date, s.language))

    # ---------- Review history ----------

    async def append_review_event(self, event: ReviewEvent) -> None:
        self._events.append(event)

    async def review_events(
        self, language: str | None = None, limit: int | None = None
    ) -> list[ReviewEvent]:
        events = [e for e in reversed(self._events) if language is None or e.language == language]
        return events[:limit] if limit is not None else events

    async def append_session_record(self, record: ReviewSessionRecord) -> None:
        self._sessions.append(record)

    async def session_records(self, language: str | None = None) -> list[ReviewSessionRecord]:
        return [r for r in reversed(self._sessions) if language is None or r.language == language]

    # ---------- Lifecycle ----------

    def transaction(self):
        return self._transaction()

    async def _begin(self) -> None:
        self._snapshot = (
            copy.deepcopy(self._words),
            copy.deepcopy(self._stats),
            list(self._events),
            list(self._sessions),
        )

    async def _commit(self) -> None:
        self._snapshot = None

    async def _rollback(self) -> None:
        self._words, self._stats, self._events, self._sessions = self._snapshot
        self._snapshot = None

    async def wipe(self) -> None:
        self._words.clear()
        self._stats.clear()
        self._events.clear()
        self._sessions.clear()
