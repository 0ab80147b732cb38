from datetime import datetime, timezone

import pytest

from glean.domain.errors import StorageFailure
from glean.domain.models import DailyStat
from glean.infrastructure.sqlite_repository import SqliteRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path, make_word):
    path = tmp_path / "nested" / "glean.db"
    repo = SqliteRepository(path)
    await repo.put_word(make_word("mace", contexts=2))
    await repo.close()

    reopened = SqliteRepository(path)
    vocab = await reopened.get_word("mace", "sq")
    await reopened.close()

    assert vocab.times_seen == 2
    assert vocab.added_at == NOW


@pytest.mark.asyncio
async def test_unicode_contexts_round_trip(tmp_path, make_context, make_word):
    repo = SqliteRepository(tmp_path / "glean.db")
    vocab = make_word("çelës", contexts=0)
    vocab.add_context(make_context("Ku është çelësi?", meaning="key"))
    await repo.put_word(vocab)

    loaded = await repo.get_word("çelës", "sq")
    assert loaded.context_list()[0].sentence_text == "Ku është çelësi?"
    assert loaded.context_list()[0].meaning == "key"


@pytest.mark.asyncio
async def test_sqlite_errors_surface_as_storage_failure(tmp_path):
    repo = SqliteRepository(tmp_path / "glean.db")
    await repo.close()

    with pytest.raises(StorageFailure):
        await repo.put_daily_stat(DailyStat(date=NOW.date(), language="sq"))
    with pytest.raises(StorageFailure):
        await repo.scan_words()


def test_unopenable_path_raises_storage_failure(tmp_path):
    target = tmp_path / "dir.db"
    target.mkdir()
    with pytest.raises(StorageFailure):
        SqliteRepository(target)
