"""
CLI entry point for flashreview.
"""

# Standard library imports
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Third-party imports
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Local application imports
from flashreview import config as flashreview_config
from flashreview.corpus import CardStore, load_card_store
from flashreview.db.database import ReviewStateDatabase
from flashreview.db.db_utils import backup_database, find_latest_backup
from flashreview.exceptions import (
    CardNotFoundError,
    CorpusError,
    InvalidOutcomeError,
    InvalidStateError,
    PersistenceError,
)
from flashreview.models import ensure_utc
from flashreview.review_processor import ReviewProcessor
from flashreview.scheduler import SM2Scheduler, SM2SchedulerConfig
from flashreview.selector import count_due, next_due_at, select_due
from flashreview.cli._review_logic import review_logic


console = Console()

app = typer.Typer(
    name="flashreview",
    help="Flashreview: spaced-repetition review for a flash-card corpus.",
    add_completion=False,
    rich_markup_mode="markdown",
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
):
    """Flashreview: spaced-repetition review for a flash-card corpus."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ---------------------------------------------------------------------------
# Helpers for resolving paths and shared inputs
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve db path from CLI flag, FLASHREVIEW_DB or settings. Exits on missing."""
    if db is not None:
        return db
    if flashreview_config.settings.db is not None:
        return flashreview_config.settings.db
    console.print(
        "[bold red]Error: --db is required "
        "(or set the FLASHREVIEW_DB environment variable).[/bold red]"
    )
    raise typer.Exit(code=1)


def _resolve_cards_path(cards: Optional[Path]) -> Path:
    if cards is not None:
        return cards
    if flashreview_config.settings.cards is not None:
        return flashreview_config.settings.cards
    console.print(
        "[bold red]Error: --cards is required "
        "(or set the FLASHREVIEW_CARDS environment variable).[/bold red]"
    )
    raise typer.Exit(code=1)


def _resolve_user(user: Optional[str]) -> str:
    return user or flashreview_config.settings.user


def _resolve_limit(limit: Optional[int]) -> int:
    return flashreview_config.settings.session_limit if limit is None else limit


def _parse_now(value: Optional[str]) -> datetime:
    """Parse an ISO 8601 --now value (``Z`` suffix allowed); default is the
    current UTC time."""
    if value is None:
        return datetime.now(timezone.utc)
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        raise typer.BadParameter(
            f"'{value}' is not an ISO 8601 timestamp.", param_hint="--now"
        ) from None


def _build_scheduler() -> SM2Scheduler:
    return SM2Scheduler(
        SM2SchedulerConfig(
            max_interval_days=flashreview_config.settings.max_interval_days
        )
    )


def _load_cards(cards_path: Path) -> CardStore:
    """
    Load the card corpus, report per-record problems, and exit with code 1
    when nothing usable was loaded.
    """
    try:
        card_store, errors = load_card_store(cards_path)
    except CorpusError as e:
        console.print(f"[bold red]Corpus Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if errors:
        console.print(
            f"[yellow]{len(errors)} problem(s) while loading cards:[/yellow]"
        )
        for error in errors[:10]:
            console.print(f"- {escape(str(error))}")
    if not len(card_store):
        console.print("[bold red]Error: no cards could be loaded.[/bold red]")
        raise typer.Exit(code=1)
    return card_store


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB review state database. "
    "Falls back to FLASHREVIEW_DB env var.",
    envvar="FLASHREVIEW_DB",
)

_cards_option = typer.Option(  # noqa: B008
    None,
    "--cards",
    help="Card corpus: flash-card-data.js, a JSON/YAML file, or a directory. "
    "Falls back to FLASHREVIEW_CARDS env var.",
    envvar="FLASHREVIEW_CARDS",
)

_user_option = typer.Option(  # noqa: B008
    None,
    "--user",
    help="User whose review state to use. Falls back to FLASHREVIEW_USER.",
    envvar="FLASHREVIEW_USER",
)

_now_option = typer.Option(  # noqa: B008
    None,
    "--now",
    help="Reference time as ISO 8601 (default: current UTC time).",
)

_limit_option = typer.Option(  # noqa: B008
    None,
    "--limit",
    "-l",
    help="Maximum number of cards in the session.",
)


# ---------------------------------------------------------------------------
# Review (non-interactive) and submit
# ---------------------------------------------------------------------------


@app.command()
def review(
    limit: Optional[int] = _limit_option,
    now: Optional[str] = _now_option,
    topic: Optional[str] = typer.Option(
        None, "--topic", help="Only consider cards from this topic."
    ),
    db: Optional[Path] = _db_option,
    cards: Optional[Path] = _cards_option,
    user: Optional[str] = _user_option,
):
    """Print the ids of the cards due for review, one per line."""
    db_path = _resolve_db_path(db)
    cards_path = _resolve_cards_path(cards)
    reference_time = _parse_now(now)
    card_store = _load_cards(cards_path)
    if topic:
        card_store = card_store.filter(topic=topic)

    try:
        with ReviewStateDatabase(db_path=db_path, user_id=_resolve_user(user)) as db_inst:
            db_inst.initialize_schema()
            states = db_inst.load()
    except PersistenceError as e:
        console.print(f"[bold red]Database Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    for card_id in select_due(card_store, states, reference_time, _resolve_limit(limit)):
        typer.echo(card_id)


@app.command()
def submit(
    card_id: str = typer.Argument(..., help="Id of the reviewed card."),  # noqa: B008
    outcome: str = typer.Argument(  # noqa: B008
        ..., help="Outcome: again, hard, good, easy (or 0-3)."
    ),
    now: Optional[str] = _now_option,
    db: Optional[Path] = _db_option,
    cards: Optional[Path] = _cards_option,
    user: Optional[str] = _user_option,
):
    """Apply a review outcome to one card and persist its new state."""
    db_path = _resolve_db_path(db)
    cards_path = _resolve_cards_path(cards)
    reviewed_at = _parse_now(now)
    card_store = _load_cards(cards_path)

    try:
        with ReviewStateDatabase(db_path=db_path, user_id=_resolve_user(user)) as db_inst:
            db_inst.initialize_schema()
            processor = ReviewProcessor(card_store, db_inst, _build_scheduler())
            new_state = processor.process_review(
                card_id, outcome, reviewed_at=reviewed_at
            )
    except InvalidOutcomeError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except InvalidStateError as e:
        console.print(f"[bold red]Corrupted review state:[/bold red] {escape(str(e))}")
        console.print(
            f"Run [cyan]flashreview reset {escape(card_id)}[/cyan] "
            "to start this card over."
        )
        raise typer.Exit(code=1) from e
    except CardNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except PersistenceError as e:
        console.print(f"[bold red]Database Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    due_str = new_state.due_at.isoformat() if new_state.due_at else "now"
    console.print(
        f"[green]Recorded.[/green] {escape(card_id)}: next due in "
        f"[bold]{new_state.interval_days} days[/bold] ({due_str}), "
        f"ease {new_state.ease_factor:.2f}, streak {new_state.repetitions}."
    )


# ---------------------------------------------------------------------------
# Interactive study
# ---------------------------------------------------------------------------


@app.command()
def study(
    limit: Optional[int] = _limit_option,
    topic: Optional[str] = typer.Option(
        None, "--topic", help="Only study cards from this topic."
    ),
    db: Optional[Path] = _db_option,
    cards: Optional[Path] = _cards_option,
    user: Optional[str] = _user_option,
):
    """Starts an interactive review session over the due cards."""
    db_path = _resolve_db_path(db)
    card_store = _load_cards(_resolve_cards_path(cards))
    if topic:
        card_store = card_store.filter(topic=topic)

    try:
        backup_path = backup_database(db_path)
        if backup_path != db_path:
            console.print(f"Database backed up to: [dim]{backup_path}[/dim]")
        review_logic(
            card_store=card_store,
            db_path=db_path,
            user_id=_resolve_user(user),
            limit=_resolve_limit(limit),
            scheduler=_build_scheduler(),
        )
    except PersistenceError as e:
        console.print(f"[bold]A database error occurred: {escape(str(e))}[/bold]")
        raise typer.Exit(code=1) from e


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def _display_overall_stats(cons: Console, stats_data: dict):
    overall_table = Table(title="Review Overview", show_header=False)
    overall_table.add_column("Metric", style="cyan")
    overall_table.add_column("Value", style="magenta")
    overall_table.add_row("Total Cards", str(stats_data["total_cards"]))
    overall_table.add_row("Reviewed Cards", str(stats_data["reviewed_cards"]))
    overall_table.add_row("New Cards", str(stats_data["new_cards"]))
    overall_table.add_row("Due Now", str(stats_data["due_now"]))
    next_due = stats_data["next_due_at"]
    overall_table.add_row(
        "Next Due", next_due.isoformat() if next_due else "-"
    )
    overall_table.add_row("Total Reviews", str(stats_data["total_reviews"]))
    cons.print(overall_table)


def _display_outcome_stats(cons: Console, outcomes: dict):
    outcome_table = Table(title="Outcomes")
    outcome_table.add_column("Outcome", style="cyan")
    outcome_table.add_column("Count", style="magenta")
    for name in ("Again", "Hard", "Good", "Easy"):
        outcome_table.add_row(name, str(outcomes.get(name, 0)))
    cons.print(outcome_table)


def _display_topic_stats(cons: Console, topics: list):
    topics_table = Table(title="Topics")
    topics_table.add_column("Topic", style="cyan")
    topics_table.add_column("Card Count", style="magenta")
    topics_table.add_column("Due Count", style="yellow")
    for topic in topics:
        topics_table.add_row(
            topic["topic"], str(topic["card_count"]), str(topic["due_count"])
        )
    cons.print(topics_table)


@app.command()
def stats(
    now: Optional[str] = _now_option,
    db: Optional[Path] = _db_option,
    cards: Optional[Path] = _cards_option,
    user: Optional[str] = _user_option,
):
    """Display review progress for the corpus."""
    db_path = _resolve_db_path(db)
    reference_time = _parse_now(now)
    card_store = _load_cards(_resolve_cards_path(cards))

    try:
        with ReviewStateDatabase(db_path=db_path, user_id=_resolve_user(user)) as db_inst:
            db_inst.initialize_schema()
            states = db_inst.load()
            db_stats = db_inst.get_database_stats()
    except PersistenceError as e:
        console.print(f"[bold]A database error occurred: {escape(str(e))}[/bold]")
        raise typer.Exit(code=1) from e

    reviewed = sum(
        1 for card in card_store
        if card.id in states and not states[card.id].is_new
    )
    stats_data = {
        "total_cards": len(card_store),
        "reviewed_cards": reviewed,
        "new_cards": len(card_store) - reviewed,
        "due_now": count_due(card_store, states, reference_time),
        "next_due_at": next_due_at(card_store, states, reference_time),
        "total_reviews": db_stats["total_reviews"],
    }
    _display_overall_stats(console, stats_data)
    _display_outcome_stats(console, db_stats["outcomes"])

    topics = []
    for topic in card_store.topics():
        subset = card_store.filter(topic=topic)
        topics.append(
            {
                "topic": topic,
                "card_count": len(subset),
                "due_count": count_due(subset, states, reference_time),
            }
        )
    _display_topic_stats(console, topics)


# ---------------------------------------------------------------------------
# Reset and restore
# ---------------------------------------------------------------------------


@app.command()
def reset(
    card_id: str = typer.Argument(..., help="Id of the card to start over."),  # noqa: B008
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Bypass confirmation prompt."
    ),
    db: Optional[Path] = _db_option,
    cards: Optional[Path] = _cards_option,
    user: Optional[str] = _user_option,
):
    """Reset one card's review state to a fresh, never-reviewed state."""
    db_path = _resolve_db_path(db)
    card_store = _load_cards(_resolve_cards_path(cards))

    if not yes:
        confirmed = typer.confirm(
            f"Reset all scheduling progress for card '{card_id}'?"
        )
        if not confirmed:
            console.print("Reset cancelled.")
            raise typer.Exit()

    try:
        backup_database(db_path)
        with ReviewStateDatabase(db_path=db_path, user_id=_resolve_user(user)) as db_inst:
            db_inst.initialize_schema()
            ReviewProcessor(card_store, db_inst, _build_scheduler()).reset_state(card_id)
    except CardNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except PersistenceError as e:
        console.print(f"[bold red]Database Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Card {escape(card_id)} reset; it is due now.[/green]")


@app.command()
def restore(
    db: Optional[Path] = _db_option,
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Bypass confirmation prompt."
    ),
):
    """Replace the review database with its most recent backup."""
    db_path = _resolve_db_path(db)
    latest_backup = find_latest_backup(db_path)
    if latest_backup is None:
        console.print(
            f"[bold red]Error: No backup files found for {escape(db_path.name)}."
            "[/bold red]"
        )
        raise typer.Exit(code=1)

    console.print(f"Latest backup: [cyan]{latest_backup.name}[/cyan]")
    if not yes and not typer.confirm(
        f"Overwrite {db_path.name} and lose every review since this backup?"
    ):
        console.print("Restore cancelled.")
        raise typer.Exit()

    # A leftover write-ahead log would be replayed onto the restored file.
    wal_path = db_path.with_name(db_path.name + ".wal")
    try:
        wal_path.unlink(missing_ok=True)
        shutil.copy2(latest_backup, db_path)
    except OSError as e:
        console.print(f"[bold red]Restore failed: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e
    console.print(
        f"[bold green]Review database successfully restored from "
        f"{latest_backup.name}.[/bold green]"
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Console-script entry point. Anything unexpected is reported in red
    and ends the process with status 1."""
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {escape(str(e))}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
