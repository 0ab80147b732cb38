import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from glean.application.factory import build_services
from glean.domain.errors import NotFound
from glean.domain.models import CardState, MemoryCard, Rating, StatField
from glean.infrastructure.memory_repository import InMemoryRepository
from glean.infrastructure.sqlite_repository import SqliteRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_add_word_creates_word_and_counts_it(services, repo, make_context):
    vocab = await services.store.add_word("Mace", "SQ", make_context("Macja fle."), now=NOW)

    assert vocab.key == ("mace", "sq")
    assert vocab.card.state == CardState.NEW
    assert vocab.card.due == NOW
    assert vocab.times_seen == 1

    stat = await repo.get_daily_stat(NOW.date(), "sq")
    assert stat.get(StatField.WORDS_ADDED) == 1


@pytest.mark.asyncio
async def test_same_sentence_twice_keeps_one_context(services, repo, make_context):
    await services.store.add_word("mace", "sq", make_context("Macja fle."), now=NOW)
    vocab = await services.store.add_word("MACE", "sq", make_context("Macja  fle."), now=NOW)

    assert vocab.times_seen == 1
    stored = await repo.get_word("mace", "sq")
    assert stored.times_seen == 1
    # Only the creation counts as an added word
    assert (await repo.get_daily_stat(NOW.date(), "sq")).words_added == 1


@pytest.mark.asyncio
async def test_new_sentence_appends_context(services, make_context):
    await services.store.add_word("mace", "sq", make_context("Macja fle."), now=NOW)
    vocab = await services.store.add_word("mace", "sq", make_context("Macja ha."), now=NOW)

    assert vocab.times_seen == 2
    assert [c.sentence_text for c in vocab.context_list()] == ["Macja fle.", "Macja ha."]


@pytest.mark.asyncio
async def test_initial_card_is_used_on_creation(services, make_context, review_card):
    vocab = await services.store.add_word(
        "qen", "sq", make_context("Qeni leh."), initial_card=review_card, now=NOW
    )
    assert vocab.card == review_card


@pytest.mark.asyncio
@pytest.mark.parametrize("word,language", [("", "sq"), ("mace", "  "), ("mace", "all")])
async def test_add_word_rejects_bad_keys(services, make_context, word, language):
    with pytest.raises(ValueError):
        await services.store.add_word(word, language, make_context("Macja fle."))


@pytest.mark.asyncio
async def test_missing_word_raises_not_found(services):
    with pytest.raises(NotFound):
        await services.store.get_word("mace", "sq")
    with pytest.raises(NotFound):
        await services.store.update_card("mace", "sq", MemoryCard.new(NOW))
    with pytest.raises(NotFound):
        await services.store.toggle_ignore("mace", "sq")


@pytest.mark.asyncio
async def test_update_card_replaces_card(services, make_context, review_card):
    await services.store.add_word("mace", "sq", make_context("Macja fle."), now=NOW)
    await services.store.update_card("Mace", "sq", review_card)

    assert (await services.store.get_word("mace", "sq")).card == review_card


@pytest.mark.asyncio
async def test_toggle_ignore_flips_and_hides_from_due(services, make_context):
    await services.store.add_word("mace", "sq", make_context("Macja fle."), now=NOW)

    assert await services.store.toggle_ignore("mace", "sq") is True
    assert await services.store.due_words("sq", NOW) == []

    assert await services.store.toggle_ignore("mace", "sq") is False
    assert [w.word for w in await services.store.due_words("sq", NOW)] == ["mace"]


@pytest.mark.asyncio
async def test_due_words_filters_by_due_and_language(services, make_context, review_card):
    later = MemoryCard.new(NOW + timedelta(days=2))
    await services.store.add_word("mace", "sq", make_context("Macja fle."), now=NOW)
    await services.store.add_word("hund", "de", make_context("Der Hund bellt."), now=NOW)
    await services.store.add_word(
        "qen", "sq", make_context("Qeni leh."), initial_card=later, now=NOW
    )

    assert [w.word for w in await services.store.due_words("sq", NOW)] == ["mace"]
    assert sorted(w.word for w in await services.store.due_words("all", NOW)) == ["hund", "mace"]
    assert len(await services.store.due_words("all", NOW + timedelta(days=3))) == 3


@pytest.mark.asyncio
async def test_empty_vocabulary_has_nothing_due(services):
    assert await services.store.due_words("all", NOW) == []


@pytest.mark.asyncio
async def test_words_view_sorting(services, make_context):
    await services.store.add_word("beta", "sq", make_context("b1"), now=NOW)
    await services.store.add_word("alfa", "sq", make_context("a1"), now=NOW + timedelta(hours=1))
    await services.store.add_word("alfa", "sq", make_context("a2"), now=NOW + timedelta(hours=2))
    await services.store.add_word("gama", "sq", make_context("g1"), now=NOW + timedelta(hours=3))
    await services.store.toggle_ignore("gama", "sq")

    newest_first = await services.store.words_view("sq")
    assert [w.word for w in newest_first] == ["alfa", "beta"]

    by_word = await services.store.words_view("sq", sort_by="word", descending=False)
    assert [w.word for w in by_word] == ["alfa", "beta"]

    by_seen = await services.store.words_view("all", include_ignored=True, sort_by="times_seen")
    assert by_seen[0].word == "alfa"
    assert len(by_seen) == 3


@pytest.mark.asyncio
async def test_concurrent_adds_do_not_lose_contexts(services, repo, make_context):
    await asyncio.gather(
        *(
            services.store.add_word("mace", "sq", make_context(f"Sentence {i}"), now=NOW)
            for i in range(10)
        )
    )

    vocab = await repo.get_word("mace", "sq")
    assert vocab.times_seen == 10
    assert (await repo.get_daily_stat(NOW.date(), "sq")).words_added == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", ["memory", "sqlite"])
async def test_naive_and_aware_times_mix(tmp_path, config, clock, make_context, backend):
    repo = InMemoryRepository() if backend == "memory" else SqliteRepository(tmp_path / "g.db")
    services = build_services(config, repo=repo, clock=clock)
    store, scheduler = services.store, services.scheduler
    naive = NOW.replace(tzinfo=None)

    await store.add_word("mace", "sq", make_context("Macja fle.", seen_at=naive), now=naive)
    qen = await store.add_word("qen", "sq", make_context("Qeni leh."), now=NOW)
    await store.update_card("qen", "sq", scheduler.schedule(qen.card, Rating.GOOD, NOW))

    due = await store.due_words("sq", naive + timedelta(days=1))
    assert {w.word for w in due} == {"mace", "qen"}
    assert [w.word for w in await store.due_words("sq", naive)] == ["mace"]
    assert await store.due_words("sq", naive - timedelta(minutes=1)) == []

    mace = await store.get_word("mace", "sq")
    assert mace.added_at == NOW
    assert mace.card.due.tzinfo is not None
    assert mace.context_list()[0].seen_at == NOW
