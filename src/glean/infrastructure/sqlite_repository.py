"""
SQLite repository: a single database file holding vocabulary, stats and history.

Cards and contexts are stored as JSON documents next to the columns that are
queried (`due_ts`, `ignored`). Every sqlite3.Error surfaces as StorageFailure.
"""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from glean.domain.errors import StorageFailure
from glean.domain.models import DailyStat, ReviewEvent, ReviewSessionRecord, VocabularyWord
from glean.domain.ports import VocabularyRepository

from .codec import (
    card_from_dict,
    card_to_dict,
    contexts_from_pairs,
    contexts_to_pairs,
    event_from_dict,
    event_to_dict,
    session_from_dict,
    session_to_dict,
)
from .transactions import TransactionScope

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS vocab (
    word TEXT NOT NULL,
    language TEXT NOT NULL,
    added_at TEXT NOT NULL,
    ignored INTEGER NOT NULL DEFAULT 0,
    due_ts REAL NOT NULL,
    card TEXT NOT NULL,
    contexts TEXT NOT NULL,
    PRIMARY KEY (word, language)
);
CREATE INDEX IF NOT EXISTS idx_vocab_due ON vocab (language, ignored, due_ts);

CREATE TABLE IF NOT EXISTS daily_stats (
    date TEXT NOT NULL,
    language TEXT NOT NULL,
    review_count INTEGER NOT NULL DEFAULT 0,
    words_added INTEGER NOT NULL DEFAULT 0,
    words_mastered INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (date, language)
);

CREATE TABLE IF NOT EXISTS review_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    word TEXT NOT NULL,
    language TEXT NOT NULL,
    rating INTEGER NOT NULL,
    reviewed_at TEXT NOT NULL,
    date TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS review_sessions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    language TEXT NOT NULL,
    started_at TEXT NOT NULL,
    word_count INTEGER NOT NULL,
    duration_seconds INTEGER NOT NULL
);
"""

_TABLES = ("vocab", "daily_stats", "review_events", "review_sessions")


class SqliteRepository(VocabularyRepository):
    """
    VocabularyRepository backed by stdlib sqlite3.

    The connection runs in autocommit mode; transaction() issues explicit
    BEGIN/COMMIT/ROLLBACK so grouped writes land together.
    """

    def __init__(self, db_path: Path | str = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self._guard("open database"):
            self.conn = sqlite3.connect(self.db_path, isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            self.conn.executescript(SCHEMA)

        self._transaction = TransactionScope(self._begin, self._commit, self._rollback)
        logger.debug(f"Opened SQLite store at {self.db_path}")

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"SQLite failure during {action}: {e}")
            raise StorageFailure(f"Failed to {action}: {e}") from e

    # ---------- Vocabulary ----------

    async def get_word(self, word: str, language: str) -> VocabularyWord | None:
        with self._guard("read word"):
            row = self.conn.execute(
                "SELECT * FROM vocab WHERE word = ? AND language = ?", (word, language)
            ).fetchone()
        return self._row_to_word(row) if row else None

    async def put_word(self, vocab: VocabularyWord) -> None:
        with self._guard("write word"):
            self.conn.execute(
                """
                INSERT OR REPLACE INTO vocab
                    (word, language, added_at, ignored, due_ts, card, contexts)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    vocab.word,
                    vocab.language,
                    vocab.added_at.isoformat(),
                    int(vocab.ignored),
                    vocab.card.due.timestamp(),
                    json.dumps(card_to_dict(vocab.card)),
                    json.dumps(contexts_to_pairs(vocab.contexts), ensure_ascii=False),
                ),
            )

    async def scan_words(self, language: str | None = None) -> list[VocabularyWord]:
        query = "SELECT * FROM vocab"
        params: tuple = ()
        if language is not None:
            query += " WHERE language = ?"
            params = (language,)

        with self._guard("scan words"):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_word(row) for row in rows]

    async def words_due(self, language: str | None, now: datetime) -> list[VocabularyWord]:
        query = "SELECT * FROM vocab WHERE ignored = 0 AND due_ts <= ?"
        params: list = [now.timestamp()]
        if language is not None:
            query += " AND language = ?"
            params.append(language)

        with self._guard("query due words"):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_word(row) for row in rows]

    def _row_to_word(self, row: sqlite3.Row) -> VocabularyWord:
        return VocabularyWord(
            word=row["word"],
            language=row["language"],
            added_at=datetime.fromisoformat(row["added_at"]),
            card=card_from_dict(json.loads(row["card"])),
            ignored=bool(row["ignored"]),
            contexts=contexts_from_pairs(json.loads(row["contexts"])),
        )

    # ---------- Daily stats ----------

    async def get_daily_stat(self, day: date, language: str) -> DailyStat | None:
        with self._guard("read daily stat"):
            row = self.conn.execute(
                "SELECT * FROM daily_stats WHERE date = ? AND language = ?",
                (day.isoformat(), language),
            ).fetchone()
        return self._row_to_stat(row) if row else None

    async def put_daily_stat(self, stat: DailyStat) -> None:
        with self._guard("write daily stat"):
            self.conn.execute(
                """
                INSERT OR REPLACE INTO daily_stats
                    (date, language, review_count, words_added, words_mastered)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    stat.date.isoformat(),
                    stat.language,
                    stat.review_count,
                    stat.words_added,
                    stat.words_mastered,
                ),
            )

    async def daily_stats(
        self,
        language: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DailyStat]:
        clauses = []
        params = []
        if language is not None:
            clauses.append("language = ?")
            params.append(language)
        if start is not None:
            clauses.append("date >= ?")
            params.append(start.isoformat())
        if end is not None:
            clauses.append("date <= ?")
            params.append(end.isoformat())

        query = "SELECT * FROM daily_stats"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date ASC, language ASC"

        with self._guard("query daily stats"):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_stat(row) for row in rows]

    def _row_to_stat(self, row: sqlite3.Row) -> DailyStat:
        return DailyStat(
            date=date.fromisoformat(row["date"]),
            language=row["language"],
            review_count=row["review_count"],
            words_added=row["words_added"],
            words_mastered=row["words_mastered"],
        )

    # ---------- Review history ----------

    async def append_review_event(self, event: ReviewEvent) -> None:
        data = event_to_dict(event)
        with self._guard("append review event"):
            self.conn.execute(
                """
                INSERT INTO review_events (id, word, language, rating, reviewed_at, date)
                VALUES (:id, :word, :language, :rating, :reviewed_at, :date)
                """,
                data,
            )

    async def review_events(
        self, language: str | None = None, limit: int | None = None
    ) -> list[ReviewEvent]:
        query = "SELECT * FROM review_events"
        params: list = []
        if language is not None:
            query += " WHERE language = ?"
            params.append(language)
        query += " ORDER BY seq DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._guard("query review events"):
            rows = self.conn.execute(query, params).fetchall()
        return [event_from_dict(dict(row)) for row in rows]

    async def append_session_record(self, record: ReviewSessionRecord) -> None:
        with self._guard("append session record"):
            self.conn.execute(
                """
                INSERT INTO review_sessions (id, language, started_at, word_count, duration_seconds)
                VALUES (:id, :language, :started_at, :word_count, :duration_seconds)
                """,
                session_to_dict(record),
            )

    async def session_records(self, language: str | None = None) -> list[ReviewSessionRecord]:
        query = "SELECT * FROM review_sessions"
        params: list = []
        if language is not None:
            query += " WHERE language = ?"
            params.append(language)
        query += " ORDER BY seq DESC"

        with self._guard("query session records"):
            rows = self.conn.execute(query, params).fetchall()
        return [session_from_dict(dict(row)) for row in rows]

    # ---------- Lifecycle ----------

    def transaction(self):
        return self._transaction()

    async def _begin(self) -> None:
        with self._guard("begin transaction"):
            self.conn.execute("BEGIN")

    async def _commit(self) -> None:
        with self._guard("commit transaction"):
            self.conn.execute("COMMIT")

    async def _rollback(self) -> None:
        with self._guard("roll back transaction"):
            self.conn.execute("ROLLBACK")

    async def wipe(self) -> None:
        with self._guard("wipe database"):
            for table in _TABLES:
                self.conn.execute(f"DELETE FROM {table}")  # noqa: S608
        logger.info("All stored data deleted")

    async def close(self) -> None:
        with self._guard("close database"):
            self.conn.close()
