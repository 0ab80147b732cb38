import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from glean.application.stats.service import StatsAggregator
from glean.domain.models import DailyStat, Rating, ReviewEvent, ReviewSessionRecord, StatField

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
T = NOW.date()


@pytest.fixture
def stats(repo):
    return StatsAggregator(repo)


async def put_reviews(repo, language, *days):
    for day in days:
        await repo.put_daily_stat(DailyStat(date=day, language=language, review_count=3))


# --- record_daily ---


@pytest.mark.asyncio
async def test_record_daily_creates_then_increments(stats, repo):
    await stats.record_daily("sq", T, StatField.WORDS_ADDED)
    stat = await stats.record_daily("SQ", T, StatField.WORDS_ADDED, delta=2)

    assert stat.words_added == 3
    assert (await repo.get_daily_stat(T, "sq")).words_added == 3


@pytest.mark.asyncio
async def test_record_daily_rejects_negative_delta(stats):
    with pytest.raises(ValueError):
        await stats.record_daily("sq", T, StatField.REVIEW_COUNT, delta=-1)


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(stats, repo):
    await asyncio.gather(
        *(stats.record_daily("sq", T, StatField.REVIEW_COUNT) for _ in range(25))
    )
    assert (await repo.get_daily_stat(T, "sq")).review_count == 25


@pytest.mark.asyncio
async def test_record_review_appends_and_counts(stats, repo):
    event = ReviewEvent(
        id="01J0000000000000000000000A",
        word="mace",
        language="sq",
        rating=Rating.GOOD,
        reviewed_at=NOW,
        date=T,
    )
    await stats.record_review(event)

    assert await repo.review_events() == [event]
    assert (await repo.get_daily_stat(T, "sq")).review_count == 1


@pytest.mark.asyncio
async def test_record_session_delegates_to_repository():
    repo = AsyncMock()
    stats = StatsAggregator(repo)
    record = ReviewSessionRecord(
        id="01J0000000000000000000000B",
        language="sq",
        started_at=NOW,
        word_count=5,
        duration_seconds=60,
    )

    await stats.record_session(record)

    repo.append_session_record.assert_awaited_once_with(record)


# --- streak ---


@pytest.mark.asyncio
async def test_streak_stops_at_gap(stats, repo):
    await put_reviews(repo, "sq", T, T - timedelta(days=1), T - timedelta(days=3))
    assert await stats.streak("sq", as_of=T) == 2


@pytest.mark.asyncio
async def test_streak_counts_from_yesterday_when_today_is_empty(stats, repo):
    await put_reviews(repo, "sq", T - timedelta(days=1), T - timedelta(days=2))
    assert await stats.streak("sq", as_of=T) == 2


@pytest.mark.asyncio
async def test_streak_is_zero_without_recent_reviews(stats, repo):
    await put_reviews(repo, "sq", T - timedelta(days=2))
    assert await stats.streak("sq", as_of=T) == 0
    assert await stats.streak("de", as_of=T) == 0


@pytest.mark.asyncio
async def test_streak_ignores_days_with_only_added_words(stats, repo):
    await put_reviews(repo, "sq", T, T - timedelta(days=2))
    await repo.put_daily_stat(DailyStat(date=T - timedelta(days=1), language="sq", words_added=4))
    assert await stats.streak("sq", as_of=T) == 1


@pytest.mark.asyncio
async def test_streak_across_all_languages(stats, repo):
    await put_reviews(repo, "sq", T)
    await put_reviews(repo, "de", T - timedelta(days=1))
    assert await stats.streak("sq", as_of=T) == 1
    assert await stats.streak("all", as_of=T) == 2


# --- Series and summary ---


@pytest.mark.asyncio
async def test_daily_series_is_zero_filled_and_summed(stats, repo):
    await repo.put_daily_stat(DailyStat(date=T, language="sq", review_count=2, words_added=1))
    await repo.put_daily_stat(DailyStat(date=T, language="de", review_count=5))
    await repo.put_daily_stat(DailyStat(date=T - timedelta(days=2), language="sq", words_added=3))

    series = await stats.daily_series("all", T, days=4)

    assert [row.date for row in series] == [T - timedelta(days=d) for d in (3, 2, 1, 0)]
    assert [row.review_count for row in series] == [0, 0, 0, 7]
    assert [row.words_added for row in series] == [0, 3, 0, 1]


@pytest.mark.asyncio
async def test_vocab_growth_is_cumulative(stats, repo):
    await repo.put_daily_stat(DailyStat(date=T - timedelta(days=2), language="sq", words_added=3))
    await repo.put_daily_stat(DailyStat(date=T, language="sq", words_added=2))

    growth = await stats.vocab_growth("sq", T, days=3)

    assert growth == [
        (T - timedelta(days=2), 3),
        (T - timedelta(days=1), 3),
        (T, 5),
    ]


@pytest.mark.asyncio
async def test_summary(stats, repo, make_word, review_card):
    await put_reviews(repo, "sq", T, T - timedelta(days=1))
    words = [make_word("mace", card=review_card), make_word("qen")]

    summary = await stats.summary("sq", words, T)

    assert summary.total_vocabulary == 2
    assert summary.total_reviews == 6
    assert summary.streak == 2
    assert summary.mastered == 1


@pytest.mark.asyncio
async def test_review_history_newest_first_with_limit(stats, repo):
    for i in range(5):
        await repo.append_review_event(
            ReviewEvent(
                id=f"ev{i}",
                word=f"w{i}",
                language="sq" if i % 2 == 0 else "de",
                rating=Rating.GOOD,
                reviewed_at=NOW + timedelta(minutes=i),
                date=T,
            )
        )

    assert [e.id for e in await stats.review_history("all", limit=3)] == ["ev4", "ev3", "ev2"]
    assert [e.id for e in await stats.review_history("sq")] == ["ev4", "ev2", "ev0"]


def test_mastered_words_uses_policy(stats, make_word, review_card):
    words = [make_word("mace", card=review_card), make_word("qen")]
    assert [w.word for w in stats.mastered_words(words)] == ["mace"]


def test_default_timezone_is_utc(stats):
    assert stats.tz == timezone.utc
