from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from glean.application.scheduler import CardScheduler, format_interval
from glean.domain.errors import InvalidRating
from glean.domain.models import CardState, MemoryCard, Rating

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    return CardScheduler(enable_fuzzing=False)


def interval(card: MemoryCard) -> timedelta:
    return card.due - NOW


# --- Contract ---


@pytest.mark.parametrize("rating", list(Rating))
def test_due_is_in_the_future_for_new_cards(scheduler, rating):
    card = scheduler.schedule(MemoryCard.new(NOW), rating, NOW)
    assert card.due > NOW
    assert card.state != CardState.NEW
    assert card.last_review == NOW
    assert card.reps == 1


@pytest.mark.parametrize("rating", list(Rating))
def test_due_is_in_the_future_for_review_cards(scheduler, review_card, rating):
    assert scheduler.schedule(review_card, rating, NOW).due > NOW


@pytest.fixture(params=list(CardState))
def card_in_state(request, scheduler, review_card) -> MemoryCard:
    """A card in each scheduling state, last touched at NOW."""
    if request.param == CardState.NEW:
        return MemoryCard.new(NOW)
    if request.param == CardState.LEARNING:
        card = scheduler.schedule(MemoryCard.new(NOW), Rating.AGAIN, NOW)
    elif request.param == CardState.RELEARNING:
        card = scheduler.schedule(review_card, Rating.AGAIN, NOW)
    else:
        card = review_card
    assert card.state == request.param
    return card


def test_again_interval_not_longer_than_good(scheduler, card_in_state):
    again = scheduler.schedule(card_in_state, Rating.AGAIN, NOW)
    good = scheduler.schedule(card_in_state, Rating.GOOD, NOW)
    assert interval(again) <= interval(good)


def test_easy_interval_not_shorter_than_good(scheduler, card_in_state):
    easy = scheduler.schedule(card_in_state, Rating.EASY, NOW)
    good = scheduler.schedule(card_in_state, Rating.GOOD, NOW)
    assert interval(easy) >= interval(good)


def test_input_card_is_not_modified(scheduler, review_card):
    before = replace(review_card)
    scheduler.schedule(review_card, Rating.GOOD, NOW)
    assert review_card == before


# --- State machine ---


def test_new_card_rated_easy_graduates(scheduler):
    card = scheduler.schedule(MemoryCard.new(NOW), Rating.EASY, NOW)
    assert card.state == CardState.REVIEW


def test_new_card_rated_good_enters_learning(scheduler):
    card = scheduler.schedule(MemoryCard.new(NOW), Rating.GOOD, NOW)
    assert card.state == CardState.LEARNING
    assert card.stability > 0


def test_learning_card_graduates_after_successful_ratings(scheduler):
    card = MemoryCard.new(NOW)
    now = NOW
    for _ in range(5):
        card = scheduler.schedule(card, Rating.GOOD, now)
        if card.state == CardState.REVIEW:
            break
        now = card.due
    assert card.state == CardState.REVIEW


def test_review_card_lapses_on_again(scheduler, review_card):
    card = scheduler.schedule(review_card, Rating.AGAIN, NOW)
    assert card.state == CardState.RELEARNING
    assert card.lapses == review_card.lapses + 1
    assert card.reps == review_card.reps + 1


def test_learning_again_is_not_a_lapse(scheduler):
    learning = scheduler.schedule(MemoryCard.new(NOW), Rating.GOOD, NOW)
    card = scheduler.schedule(learning, Rating.AGAIN, learning.due)
    assert card.lapses == 0


# --- Validation ---


def test_invalid_rating_is_rejected(scheduler):
    with pytest.raises(InvalidRating):
        scheduler.schedule(MemoryCard.new(NOW), 7, NOW)


def test_rating_names_are_accepted(scheduler):
    by_name = scheduler.schedule(MemoryCard.new(NOW), "good", NOW)
    by_value = scheduler.schedule(MemoryCard.new(NOW), Rating.GOOD, NOW)
    assert by_name == by_value


def test_fuzz_factor_out_of_range():
    with pytest.raises(ValueError):
        CardScheduler(fuzz_factor=1.5)


# --- Fuzz ---


def test_fuzz_is_reproducible_and_bounded(review_card):
    plain = CardScheduler(enable_fuzzing=False).schedule(review_card, Rating.GOOD, NOW)
    first = CardScheduler(fuzz_factor=0.05, seed=42).schedule(review_card, Rating.GOOD, NOW)
    second = CardScheduler(fuzz_factor=0.05, seed=42).schedule(review_card, Rating.GOOD, NOW)

    assert first == second
    plain_days = interval(plain).total_seconds() / 86400
    fuzzed_days = interval(first).total_seconds() / 86400
    assert abs(fuzzed_days - plain_days) <= plain_days * 0.05 + 1


def test_preview_matches_schedule(review_card):
    scheduler = CardScheduler(fuzz_factor=0.05, seed=3)
    options = scheduler.preview_all(review_card, NOW)

    assert [o.rating for o in options] == list(Rating)
    for option in options:
        assert option.card == scheduler.schedule(review_card, option.rating, NOW)


def test_fuzz_preserves_rating_order(review_card):
    for seed in range(20):
        options = CardScheduler(fuzz_factor=0.05, seed=seed).preview_all(review_card, NOW)
        dues = [o.card.due for o in options]
        assert dues == sorted(dues)


# --- Interval labels ---


@pytest.mark.parametrize(
    "delta,label",
    [
        (timedelta(seconds=30), "<1m"),
        (timedelta(minutes=5), "5m"),
        (timedelta(hours=3), "3h"),
        (timedelta(days=4), "4d"),
        (timedelta(days=65), "2mo"),
        (timedelta(days=400), "1y"),
    ],
)
def test_format_interval(delta, label):
    assert format_interval(NOW, NOW + delta) == label
