import random

import pytest

from glean.application.queue_builder import build_review_queue
from glean.domain.models import Bucket


def test_empty_input_yields_empty_queue():
    result = build_review_queue([])
    assert result.queue == []
    assert len(result) == 0
    assert result.deferred_new == []


def test_new_words_come_before_reviews(make_word, review_card):
    words = [
        make_word("a", card=review_card),
        make_word("b"),
        make_word("c", card=review_card),
        make_word("d"),
    ]
    result = build_review_queue(words, rng=random.Random(1))

    buckets = [entry.bucket for entry in result.queue]
    assert buckets == [Bucket.NEW, Bucket.NEW, Bucket.REVIEW, Bucket.REVIEW]
    assert {e.word.word for e in result.queue[:2]} == {"b", "d"}
    assert result.new_count == 2
    assert result.review_count == 2


def test_new_cap_keeps_most_seen_words(make_word):
    words = [make_word(f"w{i}", contexts=i + 1) for i in range(6)]
    result = build_review_queue(words, new_cap=3, rng=random.Random(5))

    assert result.new_count == 3
    assert {e.word.word for e in result.queue} == {"w5", "w4", "w3"}
    assert {w.word for w in result.deferred_new} == {"w0", "w1", "w2"}


def test_new_cap_does_not_limit_reviews(make_word, review_card):
    words = [make_word(f"r{i}", card=review_card) for i in range(5)] + [make_word("n")]
    result = build_review_queue(words, new_cap=0)

    assert result.new_count == 0
    assert result.review_count == 5
    assert [w.word for w in result.deferred_new] == ["n"]


def test_cap_ties_keep_input_order(make_word):
    words = [make_word(f"w{i}", contexts=2) for i in range(4)]
    result = build_review_queue(words, new_cap=2, rng=random.Random(0))
    assert {e.word.word for e in result.queue} == {"w0", "w1"}


def test_seeded_rng_gives_reproducible_order(make_word):
    words = [make_word(f"w{i}") for i in range(10)]
    first = build_review_queue(words, rng=random.Random(9))
    second = build_review_queue(words, rng=random.Random(9))
    assert [e.key for e in first.queue] == [e.key for e in second.queue]


def test_input_list_is_not_reordered(make_word):
    words = [make_word(f"w{i}", contexts=10 - i) for i in range(5)]
    before = [w.word for w in words]
    build_review_queue(words, new_cap=2, rng=random.Random(2))
    assert [w.word for w in words] == before


def test_negative_cap_rejected():
    with pytest.raises(ValueError):
        build_review_queue([], new_cap=-1)
