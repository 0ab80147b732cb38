"""
Bulk export and import of the whole store.

An ExportBundle is a versioned, self-contained snapshot: words (with their cards
and ordered contexts), daily stats, review events and session records. Import
replaces everything in one transaction, so a failed import leaves the store as
it was.
"""

import datetime as dt
import json
import logging
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from glean.application.utils.time import utcnow
from glean.consts import VERSION
from glean.domain.constants import EXPORT_FORMAT_VERSION
from glean.domain.ports import VocabularyRepository
from glean.infrastructure.codec import (
    event_from_dict,
    event_to_dict,
    session_from_dict,
    session_to_dict,
    stat_from_dict,
    stat_to_dict,
    word_from_dict,
    word_to_dict,
)

logger = logging.getLogger(__name__)

BundleFormat = Literal["json", "yaml"]


class CardPayload(BaseModel):
    state: int = Field(ge=0, le=3)
    due: dt.datetime
    stability: float = 0.0
    difficulty: float = 0.0
    last_review: dt.datetime | None = None
    step: int | None = None
    reps: int = 0
    lapses: int = 0


class ContextPayload(BaseModel):
    sentence_text: str
    sentence_translation: str = ""
    meaning: str = ""
    seen_at: dt.datetime
    page_id: str | None = None


class WordPayload(BaseModel):
    word: str
    language: str
    added_at: dt.datetime
    ignored: bool = False
    card: CardPayload
    contexts: list[tuple[str, ContextPayload]] = Field(default_factory=list)


class DailyStatPayload(BaseModel):
    date: dt.date
    language: str
    review_count: int = Field(default=0, ge=0)
    words_added: int = Field(default=0, ge=0)
    words_mastered: int = Field(default=0, ge=0)


class ReviewEventPayload(BaseModel):
    id: str
    word: str
    language: str
    rating: int = Field(ge=1, le=4)
    reviewed_at: dt.datetime
    date: dt.date


class SessionPayload(BaseModel):
    id: str
    language: str
    started_at: dt.datetime
    word_count: int = Field(ge=0)
    duration_seconds: int = Field(ge=0)


class ExportBundle(BaseModel):
    """Snapshot of the store. History lists are ordered oldest first."""

    format_version: int = EXPORT_FORMAT_VERSION
    app_version: str = VERSION
    exported_at: dt.datetime = Field(default_factory=utcnow)
    words: list[WordPayload] = Field(default_factory=list)
    daily_stats: list[DailyStatPayload] = Field(default_factory=list)
    review_events: list[ReviewEventPayload] = Field(default_factory=list)
    sessions: list[SessionPayload] = Field(default_factory=list)


async def export_bundle(repo: VocabularyRepository) -> ExportBundle:
    words = sorted(await repo.scan_words(), key=lambda w: (w.language, w.added_at, w.word))
    events = await repo.review_events()
    sessions = await repo.session_records()
    stats = await repo.daily_stats()

    bundle = ExportBundle(
        words=[WordPayload.model_validate(word_to_dict(w)) for w in words],
        daily_stats=[DailyStatPayload.model_validate(stat_to_dict(s)) for s in stats],
        review_events=[
            ReviewEventPayload.model_validate(event_to_dict(e)) for e in reversed(events)
        ],
        sessions=[SessionPayload.model_validate(session_to_dict(s)) for s in reversed(sessions)],
    )
    logger.info(
        f"Exported {len(bundle.words)} words, {len(bundle.review_events)} reviews, "
        f"{len(bundle.sessions)} sessions"
    )
    return bundle


async def import_bundle(repo: VocabularyRepository, bundle: ExportBundle) -> None:
    """Replace all stored state with the bundle's contents."""
    if bundle.format_version > EXPORT_FORMAT_VERSION:
        raise ValueError(
            f"Bundle format {bundle.format_version} is newer than supported "
            f"({EXPORT_FORMAT_VERSION})"
        )

    async with repo.transaction():
        await repo.wipe()
        for payload in bundle.words:
            await repo.put_word(word_from_dict(payload.model_dump(mode="json")))
        for payload in bundle.daily_stats:
            await repo.put_daily_stat(stat_from_dict(payload.model_dump(mode="json")))
        for payload in bundle.review_events:
            await repo.append_review_event(event_from_dict(payload.model_dump(mode="json")))
        for payload in bundle.sessions:
            await repo.append_session_record(session_from_dict(payload.model_dump(mode="json")))

    logger.info(f"Imported {len(bundle.words)} words and {len(bundle.review_events)} reviews")


def dumps_bundle(bundle: ExportBundle, fmt: BundleFormat = "json") -> str:
    data = bundle.model_dump(mode="json")
    if fmt == "yaml":
        return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
    return json.dumps(data, ensure_ascii=False, indent=2)


def loads_bundle(text: str, fmt: BundleFormat = "json") -> ExportBundle:
    """Parse a serialized bundle. Malformed input raises ValueError."""
    try:
        data = yaml.safe_load(text) if fmt == "yaml" else json.loads(text)
        return ExportBundle.model_validate(data)
    except (yaml.YAMLError, json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid {fmt} bundle: {e}") from e
