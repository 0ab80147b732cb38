from datetime import datetime, timedelta, timezone

import pytest

from glean.application.transfer import (
    ExportBundle,
    dumps_bundle,
    export_bundle,
    import_bundle,
    loads_bundle,
)
from glean.domain.constants import EXPORT_FORMAT_VERSION
from glean.domain.errors import StorageFailure
from glean.domain.models import DailyStat, Rating, ReviewEvent, ReviewSessionRecord
from glean.infrastructure.memory_repository import InMemoryRepository
from glean.infrastructure.sqlite_repository import SqliteRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def populate(repo, make_word, review_card):
    await repo.put_word(make_word("mace", contexts=3, card=review_card))
    await repo.put_word(make_word("hund", language="de"))
    await repo.put_daily_stat(DailyStat(date=NOW.date(), language="sq", review_count=2))
    for i in range(3):
        await repo.append_review_event(
            ReviewEvent(
                id=f"ev{i}",
                word="mace",
                language="sq",
                rating=Rating(i + 1),
                reviewed_at=NOW + timedelta(minutes=i),
                date=NOW.date(),
            )
        )
    await repo.append_session_record(ReviewSessionRecord("s1", "sq", NOW, 3, 75))


@pytest.mark.asyncio
async def test_export_contents(repo, make_word, review_card):
    await populate(repo, make_word, review_card)

    bundle = await export_bundle(repo)

    assert bundle.format_version == EXPORT_FORMAT_VERSION
    assert [w.word for w in bundle.words] == ["hund", "mace"]
    assert len(bundle.words[1].contexts) == 3
    # History is exported oldest first
    assert [e.id for e in bundle.review_events] == ["ev0", "ev1", "ev2"]
    assert bundle.sessions[0].duration_seconds == 75


@pytest.mark.asyncio
@pytest.mark.parametrize("fmt", ["json", "yaml"])
async def test_export_import_into_sqlite_restores_everything(
    tmp_path, repo, make_word, review_card, fmt
):
    await populate(repo, make_word, review_card)
    text = dumps_bundle(await export_bundle(repo), fmt)

    target = SqliteRepository(tmp_path / "restored.db")
    await target.put_word(make_word("stale"))
    await import_bundle(target, loads_bundle(text, fmt))

    assert await target.get_word("stale", "sq") is None
    original = await repo.get_word("mace", "sq")
    restored = await target.get_word("mace", "sq")
    assert restored == original
    assert [c.sentence_id for c in restored.context_list()] == list(original.contexts)
    assert await target.review_events() == await repo.review_events()
    assert await target.session_records() == await repo.session_records()
    assert await target.daily_stats() == await repo.daily_stats()


@pytest.mark.asyncio
async def test_failed_import_leaves_store_untouched(make_word, review_card):
    repo = InMemoryRepository()
    await populate(repo, make_word, review_card)
    bundle = await export_bundle(repo)
    bundle.review_events.append(bundle.review_events[0])  # duplicate id

    target = SqliteRepository(":memory:")
    await target.put_word(make_word("kept"))

    with pytest.raises(StorageFailure):
        await import_bundle(target, bundle)
    assert [w.word for w in await target.scan_words()] == ["kept"]


@pytest.mark.asyncio
async def test_newer_format_is_rejected(repo):
    with pytest.raises(ValueError):
        await import_bundle(repo, ExportBundle(format_version=EXPORT_FORMAT_VERSION + 1))


@pytest.mark.parametrize("fmt,text", [("json", "{not json"), ("yaml", "words: 3"), ("json", "[]")])
def test_loads_bundle_rejects_malformed_input(fmt, text):
    with pytest.raises(ValueError):
        loads_bundle(text, fmt)
