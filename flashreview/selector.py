"""
Due-card selection for a review session.

All functions here are pure: they read the card corpus and a snapshot of
review states and never mutate either.
"""

from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from .models import Card, ReviewState, ensure_utc

CardRef = Union[Card, str]


def _card_id(card: CardRef) -> str:
    return card if isinstance(card, str) else card.id


def _partition_due(
    cards: Iterable[CardRef],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> Tuple[List[str], List[Tuple[datetime, int, str]]]:
    """Split due cards into never-reviewed ids and (due_at, position, id)
    tuples for reviewed ones."""
    now = ensure_utc(now)
    new_ids: List[str] = []
    overdue: List[Tuple[datetime, int, str]] = []
    for position, card in enumerate(cards):
        card_id = _card_id(card)
        state = states.get(card_id)
        if state is None or state.is_new or state.due_at is None:
            new_ids.append(card_id)
        elif state.due_at <= now:
            overdue.append((state.due_at, position, card_id))
    return new_ids, overdue


def select_due(
    cards: Iterable[CardRef],
    states: Mapping[str, ReviewState],
    now: datetime,
    limit: int,
) -> List[str]:
    """
    Build the ordered review queue for ``now``.

    Never-reviewed cards (no state, or a fresh state) come first in corpus
    order. Reviewed cards whose ``due_at`` has passed follow, most overdue
    first; equally overdue cards keep corpus order.

    Parameters:
        cards: The card corpus (Card objects or ids) in corpus order.
        states: Review states keyed by card id. Missing ids are never-reviewed.
        now: Reference time; naive values are taken as UTC.
        limit: Session size cap. ``limit <= 0`` yields an empty queue.

    Returns:
        List[str]: At most ``limit`` card ids.
    """
    if limit <= 0:
        return []
    new_ids, overdue = _partition_due(cards, states, now)
    overdue.sort()
    queue = new_ids + [card_id for _, _, card_id in overdue]
    return queue[:limit]


def count_due(
    cards: Iterable[CardRef],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> int:
    """Number of cards that ``select_due`` would consider due, ignoring
    any limit."""
    new_ids, overdue = _partition_due(cards, states, now)
    return len(new_ids) + len(overdue)


def next_due_at(
    cards: Iterable[CardRef],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> Optional[datetime]:
    """Earliest due time strictly after ``now`` among the given cards, or
    None when nothing is scheduled in the future."""
    now = ensure_utc(now)
    upcoming = [
        state.due_at
        for state in (states.get(_card_id(card)) for card in cards)
        if state is not None
        and not state.is_new
        and state.due_at is not None
        and state.due_at > now
    ]
    return min(upcoming) if upcoming else None
