"""
Storage-boundary encoding of domain objects.

Domain types hold datetimes, enums and an ordered context mapping. At the
storage boundary they become plain JSON-compatible dicts: datetimes as ISO-8601
strings and contexts as a list of [sentence_id, context] pairs, which keeps
their insertion order through any JSON or YAML round trip.
"""

from datetime import date, datetime
from typing import Any

from glean.domain.models import (
    CardState,
    Context,
    DailyStat,
    MemoryCard,
    Rating,
    ReviewEvent,
    ReviewSessionRecord,
    VocabularyWord,
)


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


# ---------- Cards ----------


def card_to_dict(card: MemoryCard) -> dict[str, Any]:
    return {
        "state": int(card.state),
        "due": _dt(card.due),
        "stability": card.stability,
        "difficulty": card.difficulty,
        "last_review": _dt(card.last_review),
        "step": card.step,
        "reps": card.reps,
        "lapses": card.lapses,
    }


def card_from_dict(data: dict[str, Any]) -> MemoryCard:
    return MemoryCard(
        state=CardState(int(data["state"])),
        due=_parse_dt(data["due"]),
        stability=float(data.get("stability") or 0.0),
        difficulty=float(data.get("difficulty") or 0.0),
        last_review=_parse_dt(data.get("last_review")),
        step=data.get("step"),
        reps=int(data.get("reps", 0)),
        lapses=int(data.get("lapses", 0)),
    )


# ---------- Contexts ----------


def context_to_dict(context: Context) -> dict[str, Any]:
    return {
        "sentence_text": context.sentence_text,
        "sentence_translation": context.sentence_translation,
        "meaning": context.meaning,
        "seen_at": _dt(context.seen_at),
        "page_id": context.page_id,
    }


def contexts_to_pairs(contexts: dict[str, Context]) -> list[list[Any]]:
    return [[sentence_id, context_to_dict(ctx)] for sentence_id, ctx in contexts.items()]


def contexts_from_pairs(pairs: list[list[Any]]) -> dict[str, Context]:
    contexts: dict[str, Context] = {}
    for sentence_id, data in pairs:
        contexts[sentence_id] = Context(
            sentence_id=sentence_id,
            sentence_text=data["sentence_text"],
            sentence_translation=data.get("sentence_translation", ""),
            meaning=data.get("meaning", ""),
            seen_at=_parse_dt(data["seen_at"]),
            page_id=data.get("page_id"),
        )
    return contexts


# ---------- Words ----------


def word_to_dict(vocab: VocabularyWord) -> dict[str, Any]:
    return {
        "word": vocab.word,
        "language": vocab.language,
        "added_at": _dt(vocab.added_at),
        "ignored": vocab.ignored,
        "card": card_to_dict(vocab.card),
        "contexts": contexts_to_pairs(vocab.contexts),
    }


def word_from_dict(data: dict[str, Any]) -> VocabularyWord:
    return VocabularyWord(
        word=data["word"],
        language=data["language"],
        added_at=_parse_dt(data["added_at"]),
        card=card_from_dict(data["card"]),
        ignored=bool(data.get("ignored", False)),
        contexts=contexts_from_pairs(data.get("contexts", [])),
    )


# ---------- History ----------


def event_to_dict(event: ReviewEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "word": event.word,
        "language": event.language,
        "rating": int(event.rating),
        "reviewed_at": _dt(event.reviewed_at),
        "date": event.date.isoformat(),
    }


def event_from_dict(data: dict[str, Any]) -> ReviewEvent:
    return ReviewEvent(
        id=data["id"],
        word=data["word"],
        language=data["language"],
        rating=Rating.parse(data["rating"]),
        reviewed_at=_parse_dt(data["reviewed_at"]),
        date=_parse_date(data["date"]),
    )


def session_to_dict(record: ReviewSessionRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "language": record.language,
        "started_at": _dt(record.started_at),
        "word_count": record.word_count,
        "duration_seconds": record.duration_seconds,
    }


def session_from_dict(data: dict[str, Any]) -> ReviewSessionRecord:
    return ReviewSessionRecord(
        id=data["id"],
        language=data["language"],
        started_at=_parse_dt(data["started_at"]),
        word_count=int(data["word_count"]),
        duration_seconds=int(data["duration_seconds"]),
    )


def stat_to_dict(stat: DailyStat) -> dict[str, Any]:
    return {
        "date": stat.date.isoformat(),
        "language": stat.language,
        "review_count": stat.review_count,
        "words_added": stat.words_added,
        "words_mastered": stat.words_mastered,
    }


def stat_from_dict(data: dict[str, Any]) -> DailyStat:
    return DailyStat(
        date=_parse_date(data["date"]),
        language=data["language"],
        review_count=int(data.get("review_count", 0)),
        words_added=int(data.get("words_added", 0)),
        words_mastered=int(data.get("words_mastered", 0)),
    )
