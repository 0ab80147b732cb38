import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from ulid import ULID

from glean.application.config import resolve_config
from glean.application.factory import Services, build_services
from glean.application.review_session import ReviewSession, SessionState
from glean.application.utils.time import local_date
from glean.consts import VERSION
from glean.domain.constants import ALL_LANGUAGES, CHART_DAYS, HISTORY_LIMIT
from glean.domain.errors import (
    GleanError,
    InvalidRating,
    NotFound,
    SessionStateError,
    StorageFailure,
)
from glean.domain.models import Context, VocabularyWord

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("glean.server")

_services: Services | None = None
_sessions: dict[str, ReviewSession] = {}


def get_services() -> Services:
    """Process-wide services, built from the resolved configuration on first use."""
    global _services
    if _services is None:
        _services = build_services(resolve_config())
    return _services


def get_sessions() -> dict[str, ReviewSession]:
    return _sessions


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"glean server v{VERSION} starting up...")
    yield
    # Shutdown
    if _services is not None:
        await _services.close()
    logger.info("glean server shutting down...")


app = FastAPI(
    title="glean server",
    description="Vocabulary capture and review scheduling for the reading app.",
    version=VERSION,
    lifespan=lifespan,
)

_ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidRating: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SessionStateError: status.HTTP_409_CONFLICT,
    StorageFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(GleanError)
async def glean_error_handler(request: Request, exc: GleanError):
    code = next(
        (code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_400_BAD_REQUEST,
    )
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ContextOut(BaseModel):
    sentence_id: str
    sentence_text: str
    sentence_translation: str
    meaning: str
    page_id: str | None
    seen_at: datetime

    @classmethod
    def of(cls, context: Context) -> "ContextOut":
        return cls(
            sentence_id=context.sentence_id,
            sentence_text=context.sentence_text,
            sentence_translation=context.sentence_translation,
            meaning=context.meaning,
            page_id=context.page_id,
            seen_at=context.seen_at,
        )


class WordOut(BaseModel):
    word: str
    language: str
    added_at: datetime
    ignored: bool
    state: str
    due: datetime
    reps: int
    lapses: int
    times_seen: int
    contexts: list[ContextOut]

    @classmethod
    def of(cls, vocab: VocabularyWord) -> "WordOut":
        return cls(
            word=vocab.word,
            language=vocab.language,
            added_at=vocab.added_at,
            ignored=vocab.ignored,
            state=vocab.card.state.name.lower(),
            due=vocab.card.due,
            reps=vocab.card.reps,
            lapses=vocab.card.lapses,
            times_seen=vocab.times_seen,
            contexts=[ContextOut.of(c) for c in vocab.context_list()],
        )


class AddWordRequest(BaseModel):
    word: str
    language: str
    sentence_text: str
    sentence_translation: str = ""
    meaning: str = ""
    page_id: str | None = None
    sentence_id: str | None = None


class WordMetricsOut(BaseModel):
    word: str
    language: str
    state: str
    reps: int
    lapses: int
    times_seen: int
    stability: float | None
    difficulty: float | None
    current_retrievability: float | None
    lapse_rate: float | None
    days_overdue: int | None
    mastered: bool


class IgnoreResponse(BaseModel):
    word: str
    language: str
    ignored: bool


class DueResponse(BaseModel):
    language: str
    new_count: int
    review_count: int
    deferred_new: int


class SessionRequest(BaseModel):
    language: str = ALL_LANGUAGES


class RateRequest(BaseModel):
    rating: int | str


class IgnoreRequest(BaseModel):
    word: str | None = None
    language: str | None = None


class SessionRecordOut(BaseModel):
    id: str
    started_at: datetime
    word_count: int
    duration_seconds: int


class SessionOut(BaseModel):
    id: str
    language: str
    state: str
    queue_size: int
    queue_length: int
    position: int
    reviewed_count: int
    new_remaining: int
    learning_remaining: int
    review_remaining: int
    current: WordOut | None = None
    bucket: str | None = None
    context_index: int = 0
    context: ContextOut | None = None
    record: SessionRecordOut | None = None

    @classmethod
    def of(cls, session_id: str, session: ReviewSession) -> "SessionOut":
        entry = session.current
        context = session.current_context
        record = session.record
        return cls(
            id=session_id,
            language=session.language,
            state=session.state.value,
            queue_size=session.queue_size,
            queue_length=session.queue_length,
            position=session.position,
            reviewed_count=session.reviewed_count,
            new_remaining=session.new_remaining,
            learning_remaining=session.learning_remaining,
            review_remaining=session.review_remaining,
            current=WordOut.of(entry.word) if entry else None,
            bucket=entry.bucket.value if entry else None,
            context_index=session.context_index,
            context=ContextOut.of(context) if context else None,
            record=(
                SessionRecordOut(
                    id=record.id,
                    started_at=record.started_at,
                    word_count=record.word_count,
                    duration_seconds=record.duration_seconds,
                )
                if record
                else None
            ),
        )


class PreviewOption(BaseModel):
    rating: int
    label: str
    interval: str
    state: str
    due: datetime


class DailyRow(BaseModel):
    date: date
    review_count: int
    words_added: int
    words_mastered: int


class StatsResponse(BaseModel):
    language: str
    total_vocabulary: int
    total_reviews: int
    streak: int
    mastered: int
    daily: list[DailyRow]
    growth: list[tuple[date, int]]


class HistoryEntry(BaseModel):
    id: str
    word: str
    language: str
    rating: int
    label: str
    reviewed_at: datetime


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------


@app.post("/vocab", response_model=WordOut)
async def add_word(req: AddWordRequest, services: Services = Depends(get_services)):
    """Record a word encounter from the reading pipeline."""
    now = services.clock()
    context = Context.from_sentence(
        req.sentence_text,
        req.sentence_translation,
        req.meaning,
        seen_at=now,
        page_id=req.page_id,
        sentence_id=req.sentence_id,
    )
    vocab = await services.store.add_word(req.word, req.language, context, now=now)
    return WordOut.of(vocab)


@app.get("/vocab", response_model=list[WordOut])
async def list_words(
    language: str = ALL_LANGUAGES,
    sort_by: Literal["added_at", "word", "times_seen"] = "added_at",
    descending: bool = True,
    include_ignored: bool = False,
    services: Services = Depends(get_services),
):
    words = await services.store.words_view(
        language, include_ignored=include_ignored, sort_by=sort_by, descending=descending
    )
    return [WordOut.of(w) for w in words]


@app.post("/vocab/{language}/{word}/ignore", response_model=IgnoreResponse)
async def toggle_ignore(language: str, word: str, services: Services = Depends(get_services)):
    ignored = await services.store.toggle_ignore(word, language)
    return IgnoreResponse(
        word=word.strip().lower(), language=language.strip().lower(), ignored=ignored
    )


@app.get("/vocab/{language}/{word}/metrics", response_model=WordMetricsOut)
async def word_metrics(language: str, word: str, services: Services = Depends(get_services)):
    """Memory metrics of a single word as of now."""
    vocab = await services.store.get_word(word, language)
    m = services.metrics.enrich(vocab, services.clock())
    return WordMetricsOut(**{**asdict(m), "state": m.state.name.lower()})


@app.get("/due", response_model=DueResponse)
async def due_summary(language: str = ALL_LANGUAGES, services: Services = Depends(get_services)):
    result = await services.build_queue(language)
    return DueResponse(
        language=language,
        new_count=result.new_count,
        review_count=result.review_count,
        deferred_new=len(result.deferred_new),
    )


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


def _session(session_id: str, sessions: dict[str, ReviewSession]) -> ReviewSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _settle(
    session_id: str, session: ReviewSession, sessions: dict[str, ReviewSession]
) -> SessionOut:
    """Snapshot the session, dropping it from the map once it is complete."""
    out = SessionOut.of(session_id, session)
    if session.state == SessionState.COMPLETE and sessions.pop(session_id, None) is not None:
        logger.info(f"Session {session_id} complete; released")
    return out


@app.post("/sessions", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    req: SessionRequest,
    services: Services = Depends(get_services),
    sessions: dict[str, ReviewSession] = Depends(get_sessions),
):
    session = await services.new_session(req.language)
    session_id = str(ULID())
    logger.info(f"Session {session_id} created with {session.queue_size} cards")
    # An empty queue completes at once and is never tracked
    if session.state != SessionState.COMPLETE:
        sessions[session_id] = session
    return SessionOut.of(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(
    session_id: str, sessions: dict[str, ReviewSession] = Depends(get_sessions)
):
    return SessionOut.of(session_id, _session(session_id, sessions))


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_session(
    session_id: str, sessions: dict[str, ReviewSession] = Depends(get_sessions)
):
    """Abandon a session. Ratings already given stay committed."""
    _session(session_id, sessions)
    del sessions[session_id]
    logger.info(f"Session {session_id} discarded")


@app.post("/sessions/{session_id}/start", response_model=SessionOut)
async def start_session(
    session_id: str, sessions: dict[str, ReviewSession] = Depends(get_sessions)
):
    session = _session(session_id, sessions)
    session.start()
    return SessionOut.of(session_id, session)


@app.post("/sessions/{session_id}/rate", response_model=SessionOut)
async def rate_card(
    session_id: str,
    req: RateRequest,
    sessions: dict[str, ReviewSession] = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    await session.rate(req.rating)
    return _settle(session_id, session, sessions)


@app.post("/sessions/{session_id}/ignore", response_model=SessionOut)
async def ignore_in_session(
    session_id: str,
    req: IgnoreRequest | None = None,
    sessions: dict[str, ReviewSession] = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    req = req or IgnoreRequest()
    await session.ignore(req.word, req.language)
    return _settle(session_id, session, sessions)


@app.post("/sessions/{session_id}/context/{direction}", response_model=SessionOut)
async def move_context(
    session_id: str,
    direction: Literal["next", "prev"],
    sessions: dict[str, ReviewSession] = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    if direction == "next":
        session.next_context()
    else:
        session.prev_context()
    return SessionOut.of(session_id, session)


@app.get("/sessions/{session_id}/preview", response_model=list[PreviewOption])
async def preview_ratings(
    session_id: str, sessions: dict[str, ReviewSession] = Depends(get_sessions)
):
    session = _session(session_id, sessions)
    return [
        PreviewOption(
            rating=int(option.rating),
            label=option.rating.label,
            interval=option.interval,
            state=option.card.state.name.lower(),
            due=option.card.due,
        )
        for option in session.preview()
    ]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@app.get("/stats", response_model=StatsResponse)
async def get_stats(
    language: str = ALL_LANGUAGES,
    days: int = CHART_DAYS,
    services: Services = Depends(get_services),
):
    today = local_date(services.clock(), services.stats.tz)
    words = await services.store.words_view(language)
    summary = await services.stats.summary(language, words, today)
    series = await services.stats.daily_series(language, today, days)
    growth = await services.stats.vocab_growth(language, today, days)
    return StatsResponse(
        language=summary.language,
        total_vocabulary=summary.total_vocabulary,
        total_reviews=summary.total_reviews,
        streak=summary.streak,
        mastered=summary.mastered,
        daily=[
            DailyRow(
                date=row.date,
                review_count=row.review_count,
                words_added=row.words_added,
                words_mastered=row.words_mastered,
            )
            for row in series
        ],
        growth=growth,
    )


@app.get("/history", response_model=list[HistoryEntry])
async def get_history(
    language: str = ALL_LANGUAGES,
    limit: int = HISTORY_LIMIT,
    services: Services = Depends(get_services),
):
    events = await services.stats.review_history(language, limit)
    return [
        HistoryEntry(
            id=e.id,
            word=e.word,
            language=e.language,
            rating=int(e.rating),
            label=e.rating.label,
            reviewed_at=e.reviewed_at,
        )
        for e in events
    ]


@app.get("/history/sessions", response_model=list[SessionRecordOut])
async def get_session_history(
    language: str = ALL_LANGUAGES, services: Services = Depends(get_services)
):
    records = await services.stats.session_history(language)
    return [
        SessionRecordOut(
            id=r.id,
            started_at=r.started_at,
            word_count=r.word_count,
            duration_seconds=r.duration_seconds,
        )
        for r in records
    ]
