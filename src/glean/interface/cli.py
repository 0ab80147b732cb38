"""glean CLI: vocabulary capture, review sessions, statistics and data transfer."""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, Literal, TypeVar

import typer

from glean.application.config import AppConfig, resolve_config
from glean.application.factory import Services, build_services
from glean.application.review_session import SessionState
from glean.application.utils.time import local_date
from glean.domain.constants import ALL_LANGUAGES, HISTORY_LIMIT
from glean.domain.errors import GleanError, InvalidRating, NotFound
from glean.domain.models import Context

T = TypeVar("T")

LanguageOption = Annotated[str, typer.Option("--language", "-l", help="Language or 'all'.")]

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="glean: learn the words you read, review them when they are due.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage glean configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    db: Annotated[Path | None, typer.Option("--db", help="SQLite database path.")] = None,
    backend: Annotated[
        str | None, typer.Option(help="Storage backend: sqlite or memory.")
    ] = None,
):
    """Global settings for glean."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"db_path": db, "backend": backend}
    if verbose:
        ctx.obj["overrides"]["verbose"] = verbose + 1


def _config(ctx: typer.Context) -> AppConfig:
    config = resolve_config((ctx.obj or {}).get("overrides"))
    # verbose: 1 warnings, 2 info, 3+ debug
    if config.verbose > 1:
        logging.getLogger().setLevel(logging.DEBUG if config.verbose > 2 else logging.INFO)
    return config


def _run(ctx: typer.Context, action: Callable[[Services], Awaitable[T]]) -> T:
    """Run an async action against freshly wired services, mapping errors to exit codes."""

    async def runner() -> T:
        services = build_services(_config(ctx))
        try:
            return await action(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except NotFound as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from None
    except InvalidRating as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(2) from None
    except (GleanError, ValueError) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None


def _show_context(context: Context | None, index: int, total: int) -> None:
    if context is None:
        return
    typer.echo(f"  [{index + 1}/{total}] {context.sentence_text}")
    if context.sentence_translation:
        typer.secho(f"        {context.sentence_translation}", dim=True)


# ---------------------------------------------------------------------------
# Vocabulary commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    word: Annotated[str, typer.Argument(help="The word as it appeared in the text.")],
    language: Annotated[str, typer.Argument(help="Language code, e.g. 'sq' or 'de'.")],
    sentence: Annotated[
        str, typer.Option("--sentence", "-s", help="Sentence containing the word.")
    ],
    translation: Annotated[
        str, typer.Option("--translation", "-t", help="Sentence translation.")
    ] = "",
    meaning: Annotated[
        str, typer.Option("--meaning", "-m", help="Meaning in this sentence.")
    ] = "",
    page: Annotated[str | None, typer.Option("--page", help="Source page identifier.")] = None,
):
    """[bold green]Add[/bold green] a word encounter to the vocabulary."""

    async def run(services: Services):
        now = services.clock()
        context = Context.from_sentence(sentence, translation, meaning, seen_at=now, page_id=page)
        return await services.store.add_word(word, language, context, now=now)

    vocab = _run(ctx, run)
    typer.echo(f"{vocab.word} ({vocab.language}): seen {vocab.times_seen} time(s)")


@app.command()
def words(
    ctx: typer.Context,
    language: LanguageOption = ALL_LANGUAGES,
    sort_by: Annotated[
        Literal["added_at", "word", "times_seen"], typer.Option("--sort", help="Sort field.")
    ] = "added_at",
    ascending: Annotated[bool, typer.Option("--asc", help="Sort ascending.")] = False,
    include_ignored: Annotated[
        bool, typer.Option("--include-ignored", help="List ignored words too.")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List tracked words."""

    async def run(services: Services):
        return await services.store.words_view(
            language, include_ignored=include_ignored, sort_by=sort_by, descending=not ascending
        )

    listing = _run(ctx, run)
    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "word": w.word,
                        "language": w.language,
                        "added_at": w.added_at.isoformat(),
                        "times_seen": w.times_seen,
                        "state": w.card.state.name.lower(),
                        "due": w.card.due.isoformat(),
                        "ignored": w.ignored,
                    }
                    for w in listing
                ],
                indent=2,
                ensure_ascii=False,
            )
        )
        return

    if not listing:
        typer.secho("No words found.", fg="yellow")
        return
    for w in listing:
        flag = " (ignored)" if w.ignored else ""
        state = w.card.state.name.lower()
        typer.echo(f"{w.word:<24} {w.language:<4} seen {w.times_seen:>3}  {state}{flag}")


@app.command()
def due(
    ctx: typer.Context,
    language: LanguageOption = ALL_LANGUAGES,
):
    """Show how many words a review session would present right now."""
    result = _run(ctx, lambda services: services.build_queue(language))

    typer.echo(f"New: {result.new_count}")
    typer.echo(f"Review: {result.review_count}")
    if result.deferred_new:
        typer.secho(f"Deferred new words (over the cap): {len(result.deferred_new)}", fg="yellow")


@app.command()
def ignore(
    ctx: typer.Context,
    word: Annotated[str, typer.Argument(help="Word to toggle.")],
    language: Annotated[str, typer.Argument(help="Language code.")],
):
    """Toggle the ignored flag of a word."""
    ignored = _run(ctx, lambda services: services.store.toggle_ignore(word, language))
    typer.echo(f"{word.strip().lower()}: {'ignored' if ignored else 'restored'}")


@app.command()
def preview(
    ctx: typer.Context,
    word: Annotated[str, typer.Argument(help="Word to preview.")],
    language: Annotated[str, typer.Argument(help="Language code.")],
):
    """Show the next interval each rating would give a word."""

    async def run(services: Services):
        vocab = await services.store.get_word(word, language)
        return services.scheduler.preview_all(vocab.card, services.clock())

    for option in _run(ctx, run):
        typer.echo(f"{int(option.rating)} {option.rating.label:<6} {option.interval}")


@app.command()
def show(
    ctx: typer.Context,
    word: Annotated[str, typer.Argument(help="Word to inspect.")],
    language: Annotated[str, typer.Argument(help="Language code.")],
):
    """Show a word's contexts and memory metrics."""

    async def run(services: Services):
        vocab = await services.store.get_word(word, language)
        return vocab, services.metrics.enrich(vocab, services.clock())

    vocab, m = _run(ctx, run)
    typer.secho(f"{vocab.word} ({vocab.language})", bold=True)
    typer.echo(f"State: {m.state.name.lower()}  reps {m.reps}  lapses {m.lapses}")
    if m.current_retrievability is not None:
        typer.echo(f"Recall: {m.current_retrievability:.0%}  stability {m.stability:.1f}d")
    typer.echo(f"Mastered: {'yes' if m.mastered else 'no'}")
    for i, context in enumerate(vocab.context_list()):
        _show_context(context, i, vocab.times_seen)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    language: LanguageOption = ALL_LANGUAGES,
):
    """Run an interactive [bold]review session[/bold].

    Answer each card with 1-4 (again, hard, good, easy). Use 'n'/'p' to cycle
    example sentences, 'i' to ignore the word and 'q' to quit without saving
    the session.
    """

    async def run(services: Services):
        session = await services.new_session(language)
        if session.state == SessionState.COMPLETE:
            typer.secho("Nothing to review.", fg="green")
            return session

        session.start()
        while session.state == SessionState.ACTIVE:
            entry = session.current
            typer.echo("")
            typer.secho(
                f"{entry.word.word} ({entry.word.language})  "
                f"new {session.new_remaining} / learning {session.learning_remaining} / "
                f"review {session.review_remaining}",
                bold=True,
            )
            _show_context(session.current_context, session.context_index, entry.word.times_seen)
            options = "  ".join(
                f"{int(o.rating)} {o.rating.label} ({o.interval})" for o in session.preview()
            )
            typer.echo(f"  {options}")

            answer = typer.prompt("Rating [1-4, n/p, i, q]").strip().lower()
            if answer == "q":
                typer.secho("Session abandoned.", fg="yellow")
                return session
            if answer == "n":
                session.next_context()
            elif answer == "p":
                session.prev_context()
            elif answer == "i":
                await session.ignore()
            else:
                try:
                    await session.rate(answer)
                except InvalidRating as e:
                    logger.warning(f"Rejected rating input {answer!r}")
                    typer.secho(str(e), fg="yellow")
        return session

    session = _run(ctx, run)

    if session.record is not None:
        typer.secho(
            f"Done: {session.reviewed_count} reviewed in {session.record.duration_seconds}s.",
            fg="green",
        )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@app.command()
def stats(
    ctx: typer.Context,
    language: LanguageOption = ALL_LANGUAGES,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show vocabulary size, review totals and the current streak."""

    async def run(services: Services):
        today = local_date(services.clock(), services.stats.tz)
        vocab = await services.store.words_view(language)
        summary = await services.stats.summary(language, vocab, today)
        series = await services.stats.daily_series(language, today)
        return summary, series

    summary, series = _run(ctx, run)
    if json_output:
        typer.echo(
            json.dumps(
                {
                    "language": summary.language,
                    "total_vocabulary": summary.total_vocabulary,
                    "total_reviews": summary.total_reviews,
                    "streak": summary.streak,
                    "mastered": summary.mastered,
                    "daily": [
                        {
                            "date": row.date.isoformat(),
                            "review_count": row.review_count,
                            "words_added": row.words_added,
                            "words_mastered": row.words_mastered,
                        }
                        for row in series
                    ],
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Vocabulary: {summary.total_vocabulary}")
    typer.echo(f"Mastered: {summary.mastered}")
    typer.echo(f"Reviews (last year): {summary.total_reviews}")
    typer.echo(f"Streak: {summary.streak} day(s)")
    today = series[-1]
    typer.echo(f"Today: {today.review_count} reviews, {today.words_added} new words")


@app.command()
def history(
    ctx: typer.Context,
    language: LanguageOption = ALL_LANGUAGES,
    limit: Annotated[int, typer.Option(help="Number of reviews to show.")] = HISTORY_LIMIT,
):
    """List the most recent reviews, newest first."""
    events = _run(ctx, lambda services: services.stats.review_history(language, limit))
    if not events:
        typer.secho("No reviews yet.", fg="yellow")
        return
    for event in events:
        typer.echo(
            f"{event.reviewed_at.strftime('%Y-%m-%d %H:%M')}  {event.word:<24} "
            f"{event.language:<4} {event.rating.label}"
        )


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Output file.")],
    fmt: Annotated[
        Literal["json", "yaml"], typer.Option("--format", help="Output format.")
    ] = "json",
):
    """Export all vocabulary, stats and history to a file."""
    from glean.application.transfer import dumps_bundle, export_bundle

    bundle = _run(ctx, lambda services: export_bundle(services.repo))
    path.write_text(dumps_bundle(bundle, fmt), encoding="utf-8")
    typer.secho(f"Exported {len(bundle.words)} words to {path}", fg="green")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Bundle file to import.", exists=True)],
    fmt: Annotated[
        Literal["json", "yaml"], typer.Option("--format", help="Input format.")
    ] = "json",
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation for destructive actions.")
    ] = False,
):
    """Replace all stored data with the contents of a bundle."""
    from glean.application.transfer import import_bundle, loads_bundle

    try:
        bundle = loads_bundle(path.read_text(encoding="utf-8"), fmt)
    except ValueError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from None

    if not force and not typer.confirm("This replaces all stored data. Continue?"):
        raise typer.Abort()

    _run(ctx, lambda services: import_bundle(services.repo, bundle))
    typer.secho(f"Imported {len(bundle.words)} words from {path}", fg="green")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port.")] = 8777,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes.")] = False,
):
    """Start the HTTP server."""
    import uvicorn

    uvicorn.run("glean.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d: dict[str, Any] = {
        k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()
    }
    typer.echo(json.dumps(d, indent=2))
