"""
Command-line interface for reviewing flashcards.
"""

import logging
from datetime import datetime
from typing import List, Optional

from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from flashreview.exceptions import InvalidOutcomeError, InvalidStateError
from flashreview.models import (
    Card,
    CodeBlock,
    ListBlock,
    ReviewOutcome,
    TableBlock,
    TextBlock,
    parse_outcome,
)
from flashreview.review_manager import ReviewSessionManager

logger = logging.getLogger(__name__)
console = Console()

_KIND_LABELS = {
    "concept": "Concept",
    "section": "Section",
    "qa": "Q&A",
}

_CODE_STYLES = {
    "good": ("green", "Good Practice"),
    "bad": ("red", "Bad Practice"),
    "neutral": ("blue", None),
}


def render_block(block) -> RenderableType:
    """Turn one answer content block into a rich renderable."""
    if isinstance(block, TextBlock):
        return Text(block.content)
    if isinstance(block, CodeBlock):
        border, label = _CODE_STYLES[block.code_type]
        return Panel(
            Syntax(block.code, block.language, word_wrap=True),
            title=label,
            border_style=border,
        )
    if isinstance(block, ListBlock):
        return Text("\n".join(f"• {item}" for item in block.items))
    if isinstance(block, TableBlock):
        table = Table(show_header=True)
        for header in block.headers:
            table.add_column(Text(header))
        for row in block.rows:
            table.add_row(*(Text(cell) for cell in row))
        return table
    raise TypeError(f"Unsupported content block: {type(block).__name__}")


def render_answer(card: Card) -> RenderableType:
    blocks: List[RenderableType] = [render_block(b) for b in card.answer]
    return Group(*blocks) if blocks else Text("(no answer recorded)")


def _card_meta(card: Card) -> str:
    parts = [p.strip() for p in (card.topic, card.category) if p and p.strip()]
    return " • ".join(parts)


def _get_user_outcome() -> ReviewOutcome:
    """
    Prompt until the user enters a valid outcome, by number or by name.
    """
    while True:
        answer = console.input(
            "[bold]Outcome (0:Again, 1:Hard, 2:Good, 3:Easy): [/bold]"
        )
        try:
            return parse_outcome(answer)
        except InvalidOutcomeError:
            console.print(
                "[bold red]Invalid outcome. Enter 0-3 or "
                "again/hard/good/easy.[/bold red]"
            )


def _display_card(card: Card) -> None:
    """
    Show a card's question, wait for Enter, then reveal the answer.
    """
    console.print(
        Panel(
            Text(card.question),
            title=_KIND_LABELS[card.kind],
            subtitle=escape(_card_meta(card)) or None,
            border_style="green",
        )
    )
    console.input("[italic]Press Enter to see the answer...[/italic]")
    console.print(Panel(render_answer(card), title="Answer", border_style="blue"))


def start_review_flow(
    manager: ReviewSessionManager,
    limit: int,
    now: Optional[datetime] = None,
) -> None:
    """
    Manages the command-line review session flow.
    """
    console.print("[bold cyan]Starting review session...[/bold cyan]")
    session = manager.initialize_session(limit=limit, now=now)

    due_cards_count = len(session.card_ids)
    if due_cards_count == 0:
        console.print("[bold yellow]No cards are due for review.[/bold yellow]")
        console.print("[bold cyan]Review session finished.[/bold cyan]")
        return

    reviewed_count = 0
    while (card := manager.get_next_card()) is not None:
        reviewed_count += 1
        console.rule(f"[bold]Card {reviewed_count} of {due_cards_count}[/bold]")

        _display_card(card)
        outcome = _get_user_outcome()

        try:
            new_state = manager.submit_review(card.id, outcome)
        except InvalidStateError as e:
            logger.error(f"Corrupted review state for {card.id}: {e}")
            console.print(
                f"[bold red]Corrupted review state:[/bold red] {escape(str(e))}"
            )
            console.print(
                f"Run [cyan]flashreview reset {escape(card.id)}[/cyan] "
                "to start this card over. Skipping it for now."
            )
            manager.skip_card(card.id)
            console.print("")
            continue
        except Exception as e:
            logger.error(f"Failed to submit review for {card.id}: {e}")
            console.print(
                f"[bold red]Error submitting review: {escape(str(e))}. "
                "Stopping the session.[/bold red]"
            )
            break

        if new_state.due_at is not None:
            console.print(
                f"[green]Reviewed.[/green] Next due in "
                f"[bold]{new_state.interval_days} days[/bold] "
                f"on {new_state.due_at.strftime('%Y-%m-%d')}."
            )
        else:
            console.print("[green]Reviewed.[/green]")
        console.print("")

    stats = manager.get_session_stats()
    console.print(
        f"[bold cyan]Review session finished. "
        f"{stats['reviewed_cards']} of {stats['total_cards']} cards reviewed.[/bold cyan]"
    )
