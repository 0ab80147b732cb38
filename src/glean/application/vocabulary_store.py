"""
Vocabulary store: the canonical set of tracked words.

Owns word creation, context deduplication, card updates and the ignore flag.
Every read-modify-write on a word is serialized per (word, language) key.
"""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import replace
from datetime import datetime
from typing import Literal

from glean.application.stats.service import StatsAggregator
from glean.application.utils.locks import KeyedLocks
from glean.application.utils.time import Clock, as_utc, local_date, utcnow
from glean.domain.constants import ALL_LANGUAGES
from glean.domain.errors import NotFound
from glean.domain.models import (
    Context,
    MemoryCard,
    StatField,
    VocabularyWord,
    language_filter,
    normalize_key,
)
from glean.domain.ports import VocabularyRepository

logger = logging.getLogger(__name__)

SortField = Literal["added_at", "word", "times_seen"]

_SORT_KEYS = {
    "added_at": lambda w: w.added_at,
    "word": lambda w: w.word,
    "times_seen": lambda w: w.times_seen,
}


class VocabularyStore:
    """
    Application service over the vocabulary part of the repository.

    Word creation also bumps today's `words_added` counter through the
    StatsAggregator, inside the same repository transaction.
    """

    def __init__(
        self,
        repo: VocabularyRepository,
        stats: StatsAggregator,
        clock: Clock = utcnow,
    ):
        self._repo = repo
        self._stats = stats
        self._clock = clock
        self._locks = KeyedLocks()

    def transaction(self) -> AbstractAsyncContextManager[None]:
        return self._repo.transaction()

    async def add_word(
        self,
        word: str,
        language: str,
        context: Context,
        initial_card: MemoryCard | None = None,
        now: datetime | None = None,
    ) -> VocabularyWord:
        """
        Record an encounter of `word` in `context`.

        Creates the word on first encounter (with `initial_card` or an empty NEW
        card). For a known word the context is appended unless a context with the
        same sentence fingerprint is already stored.

        Returns:
            The stored word after the call.
        """
        key = normalize_key(word, language)
        if not key[0] or not key[1]:
            raise ValueError("Both word and language are required")
        if key[1] == ALL_LANGUAGES:
            raise ValueError(f"'{ALL_LANGUAGES}' is reserved and cannot be a word's language")

        now = as_utc(now or self._clock())
        context = replace(context, seen_at=as_utc(context.seen_at))
        if initial_card is not None:
            initial_card = card_as_utc(initial_card)

        async with self._repo.transaction(), self._locks(key):
            existing = await self._repo.get_word(*key)

            if existing is None:
                vocab = VocabularyWord(
                    word=key[0],
                    language=key[1],
                    added_at=now,
                    card=initial_card or MemoryCard.new(now),
                )
                vocab.add_context(context)
                await self._repo.put_word(vocab)
                await self._stats.record_daily(
                    vocab.language, local_date(now, self._stats.tz), StatField.WORDS_ADDED
                )
                logger.info(f"New word: {vocab.word} ({vocab.language})")
                return vocab

            if existing.add_context(context):
                await self._repo.put_word(existing)
                logger.debug(
                    f"Context added to {existing.word} ({existing.language}); "
                    f"seen {existing.times_seen} times"
                )
            return existing

    async def get_word(self, word: str, language: str) -> VocabularyWord:
        key = normalize_key(word, language)
        vocab = await self._repo.get_word(*key)
        if vocab is None:
            raise NotFound(*key)
        return vocab

    async def update_card(self, word: str, language: str, new_card: MemoryCard) -> VocabularyWord:
        """Replace a word's memory card. Raises NotFound if the word is absent."""
        key = normalize_key(word, language)
        async with self._repo.transaction(), self._locks(key):
            vocab = await self.get_word(*key)
            vocab.card = card_as_utc(new_card)
            await self._repo.put_word(vocab)
            return vocab

    async def toggle_ignore(self, word: str, language: str) -> bool:
        """
        Flip a word's ignored flag. Raises NotFound if the word is absent.

        Returns:
            The new value of the flag.
        """
        key = normalize_key(word, language)
        async with self._repo.transaction(), self._locks(key):
            vocab = await self.get_word(*key)
            vocab.ignored = not vocab.ignored
            await self._repo.put_word(vocab)
            logger.info(
                f"{'Ignored' if vocab.ignored else 'Restored'}: {vocab.word} ({vocab.language})"
            )
            return vocab.ignored

    async def due_words(self, language: str, now: datetime | None = None) -> list[VocabularyWord]:
        """Non-ignored words due at or before `now`. Language "all" spans every language."""
        return await self._repo.words_due(
            language_filter(language), as_utc(now or self._clock())
        )

    async def words_view(
        self,
        language: str,
        include_ignored: bool = False,
        sort_by: SortField = "added_at",
        descending: bool = True,
    ) -> list[VocabularyWord]:
        """Plain listing for display and statistics, independent of due-ness."""
        words = await self._repo.scan_words(language_filter(language))
        if not include_ignored:
            words = [w for w in words if not w.ignored]

        return sorted(words, key=_SORT_KEYS[sort_by], reverse=descending)


def card_as_utc(card: MemoryCard) -> MemoryCard:
    """The same card with its timestamps normalized to aware UTC."""
    return replace(
        card,
        due=as_utc(card.due),
        last_review=as_utc(card.last_review) if card.last_review else None,
    )
