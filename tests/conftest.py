import os
import random
from datetime import datetime, timedelta, timezone

import pytest

from glean.application.config import AppConfig
from glean.application.factory import build_services
from glean.domain.models import CardState, Context, MemoryCard, VocabularyWord
from glean.infrastructure.memory_repository import InMemoryRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected wherever services read the current time."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir and clears GLEAN_* variables."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config files and databases
    monkeypatch.setenv("HOME", str(home))
    for key in [k for k in os.environ if k.startswith("GLEAN_")]:
        monkeypatch.delenv(key)
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def config():
    return AppConfig(backend="memory", enable_fuzzing=False, fuzz_seed=7)


@pytest.fixture
def services(config, repo, clock):
    return build_services(config, repo=repo, clock=clock, rng=random.Random(7))


@pytest.fixture
def make_context():
    """Factory for contexts; the sentence text determines the fingerprint."""

    def _make(text: str, meaning: str = "", seen_at: datetime = NOW) -> Context:
        return Context.from_sentence(text, f"translation of {text}", meaning, seen_at=seen_at)

    return _make


@pytest.fixture
def make_word(make_context):
    """Factory for detached VocabularyWord values with a chosen number of contexts."""

    def _make(
        word: str,
        language: str = "sq",
        contexts: int = 1,
        card: MemoryCard | None = None,
        added_at: datetime = NOW,
    ) -> VocabularyWord:
        vocab = VocabularyWord(
            word=word,
            language=language,
            added_at=added_at,
            card=card or MemoryCard.new(added_at),
        )
        for i in range(contexts):
            vocab.add_context(make_context(f"{word} sentence {i}"))
        return vocab

    return _make


@pytest.fixture
def review_card():
    """A graduated card last reviewed 30 days ago and due now."""
    return MemoryCard(
        state=CardState.REVIEW,
        due=NOW,
        stability=30.0,
        difficulty=5.0,
        last_review=NOW - timedelta(days=30),
        step=None,
        reps=6,
        lapses=0,
    )
