"""
Stats aggregator: application layer orchestrator for daily counters and streaks.

Accumulates per-day counters from review events and vocabulary growth, and derives
streaks and chart series from them.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta, timezone, tzinfo

from glean.application.utils.locks import KeyedLocks
from glean.application.utils.time import date_range, local_date, utcnow
from glean.domain.constants import CHART_DAYS, HEATMAP_DAYS, HISTORY_LIMIT
from glean.domain.models import (
    DailyStat,
    MemoryCard,
    ReviewEvent,
    ReviewSessionRecord,
    StatField,
    VocabularyWord,
    language_filter,
)
from glean.domain.ports import VocabularyRepository

from .metrics_calculator import MasteryPolicy

logger = logging.getLogger(__name__)


@dataclass
class StatsSummary:
    """Headline numbers for the statistics page."""

    language: str
    total_vocabulary: int
    total_reviews: int  # Over the heatmap window
    streak: int
    mastered: int


class StatsAggregator:
    """
    Application service for daily statistics.

    Follows Dependency Inversion: depends on the VocabularyRepository abstraction,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        repo: VocabularyRepository,
        policy: MasteryPolicy | None = None,
        tz: tzinfo = timezone.utc,
    ):
        """
        Args:
            repo: The repository (port) holding stats and history.
            policy: Mastery threshold; uses the default policy if not provided.
            tz: Timezone in which calendar days are counted.
        """
        self._repo = repo
        self.policy = policy or MasteryPolicy()
        self.tz = tz
        self._locks = KeyedLocks()

    async def record_daily(
        self, language: str, day: date, stat_field: StatField, delta: int = 1
    ) -> DailyStat:
        """
        Add `delta` to one counter of the (day, language) row, creating it if absent.

        Concurrent calls for the same key are serialized so no increment is lost.
        """
        if delta < 0:
            raise ValueError(f"Daily counters never decrease (got delta={delta})")

        language = language.strip().lower()
        async with self._repo.transaction(), self._locks((day, language)):
            stat = await self._repo.get_daily_stat(day, language)
            if stat is None:
                stat = DailyStat(date=day, language=language)
            stat.add(stat_field, delta)
            await self._repo.put_daily_stat(stat)
            return stat

    async def record_review(self, event: ReviewEvent) -> DailyStat:
        """Append a review event and count it toward its day."""
        async with self._repo.transaction():
            await self._repo.append_review_event(event)
            return await self.record_daily(event.language, event.date, StatField.REVIEW_COUNT)

    async def record_session(self, record: ReviewSessionRecord) -> None:
        await self._repo.append_session_record(record)
        logger.info(
            f"Session recorded: {record.word_count} words in {record.duration_seconds}s "
            f"({record.language})"
        )

    async def streak(self, language: str, as_of: date | None = None) -> int:
        """
        Count consecutive days with at least one review, walking back from `as_of`.

        A day that has not had a review yet does not break the streak: if `as_of`
        itself is empty, counting starts from the day before. The walk stops at the
        first day without reviews.
        """
        if as_of is None:
            as_of = local_date(utcnow(), self.tz)
        stats = await self._repo.daily_stats(language_filter(language), end=as_of)
        active = {stat.date for stat in stats if stat.review_count > 0}

        day = as_of if as_of in active else as_of - timedelta(days=1)
        count = 0
        while day in active:
            count += 1
            day -= timedelta(days=1)
        return count

    async def daily_series(
        self, language: str, end: date, days: int = CHART_DAYS
    ) -> list[DailyStat]:
        """
        One row per day for the `days` days ending at `end`, oldest first.

        Missing days are zero-filled; with language "all", counters are summed
        across languages.
        """
        start = end - timedelta(days=days - 1)
        stats = await self._repo.daily_stats(language_filter(language), start, end)

        by_day: dict[date, DailyStat] = {}
        for stat in stats:
            row = by_day.setdefault(stat.date, DailyStat(date=stat.date, language=language))
            for stat_field in StatField:
                row.add(stat_field, stat.get(stat_field))

        return [
            by_day.get(day, DailyStat(date=day, language=language))
            for day in date_range(end, days)
        ]

    async def vocab_growth(
        self, language: str, end: date, days: int = CHART_DAYS
    ) -> list[tuple[date, int]]:
        """Cumulative words added over the window, for the growth chart."""
        cumulative = 0
        growth = []
        for row in await self.daily_series(language, end, days):
            cumulative += row.words_added
            growth.append((row.date, cumulative))
        return growth

    async def review_history(
        self, language: str, limit: int = HISTORY_LIMIT
    ) -> list[ReviewEvent]:
        """Most recent review events, newest first."""
        return await self._repo.review_events(language_filter(language), limit)

    async def session_history(self, language: str) -> list[ReviewSessionRecord]:
        return await self._repo.session_records(language_filter(language))

    async def summary(
        self, language: str, words: list[VocabularyWord], today: date
    ) -> StatsSummary:
        """
        Headline statistics for a language.

        Args:
            language: Language code or "all".
            words: The non-ignored vocabulary for that language.
            today: Calendar date to compute the streak and review totals from.
        """
        series = await self.daily_series(language, today, HEATMAP_DAYS)
        return StatsSummary(
            language=language,
            total_vocabulary=len(words),
            total_reviews=sum(row.review_count for row in series),
            streak=await self.streak(language, today),
            mastered=len(self.mastered_words(words)),
        )

    def is_mastered(self, card: MemoryCard) -> bool:
        return self.policy.is_mastered(card)

    def mastered_words(self, words: list[VocabularyWord]) -> list[VocabularyWord]:
        return [w for w in words if self.policy.is_mastered(w.card)]
