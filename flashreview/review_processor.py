"""
Shared review processing logic for flashreview.

The ReviewProcessor is the orchestrating caller around the pure scheduler:
1. Card validation against the card store
2. State lookup (fresh state for never-reviewed cards)
3. Scheduler computation
4. Atomic persistence of the new state and its log entry
"""

import logging
import threading
import weakref
from datetime import datetime, timezone
from typing import Dict, Hashable, Optional, Union

from .corpus import CardStore
from .models import ReviewLogEntry, ReviewOutcome, ReviewState, parse_outcome
from .scheduler import BaseScheduler, SM2Scheduler
from .store import ReviewStateStore

logger = logging.getLogger(__name__)

# Concurrent submissions for the same user must never both apply against a
# stale read. Stores that name their backing storage (ReviewStateStore.lock_key)
# share a lock with every other store naming the same storage; the rest get
# one lock per instance.
_store_locks: "weakref.WeakKeyDictionary[ReviewStateStore, threading.Lock]" = (
    weakref.WeakKeyDictionary()
)
_keyed_locks: Dict[Hashable, threading.Lock] = {}
_store_locks_guard = threading.Lock()


def _lock_for(store: ReviewStateStore) -> threading.Lock:
    key = store.lock_key
    with _store_locks_guard:
        if key is None:
            return _store_locks.setdefault(store, threading.Lock())
        return _keyed_locks.setdefault(key, threading.Lock())


class ReviewProcessor:
    """
    Processes review submissions with consistent logic across the CLI
    commands and interactive sessions.
    """

    def __init__(
        self,
        card_store: CardStore,
        store: ReviewStateStore,
        scheduler: Optional[BaseScheduler] = None,
    ):
        """
        Initialize the ReviewProcessor.

        Args:
            card_store: The injected, read-only card corpus.
            store: Persistence adapter for review states.
            scheduler: Scheduler used to compute next states (SM-2 by default).
        """
        self.card_store = card_store
        self.store = store
        self.scheduler = scheduler or SM2Scheduler()
        self._lock = _lock_for(store)

    def _initial_state(self, card_id: str) -> ReviewState:
        config = getattr(self.scheduler, "config", None)
        ease = getattr(config, "initial_ease_factor", None)
        if ease is None:
            return ReviewState.fresh(card_id)
        return ReviewState.fresh(card_id, ease_factor=ease)

    def current_state(self, card_id: str) -> ReviewState:
        """Stored state of ``card_id``, or a fresh state if it has none."""
        self.card_store.get(card_id)
        state = self.store.get(card_id)
        return state if state is not None else self._initial_state(card_id)

    def process_review(
        self,
        card_id: str,
        outcome: Union[ReviewOutcome, int, str],
        reviewed_at: Optional[datetime] = None,
    ) -> ReviewState:
        """
        Apply one review outcome to a card and persist the result.

        Args:
            card_id: Id of the reviewed card.
            outcome: Again/Hard/Good/Easy as a member, 0-3, or a name.
            reviewed_at: Review timestamp (defaults to the current UTC time).

        Returns:
            The new ReviewState.

        Raises:
            CardNotFoundError: If the card is not in the card store.
            InvalidOutcomeError: If the outcome is not recognised.
            InvalidStateError: If the stored state is corrupted.
            PersistenceError: If the store fails; nothing is retried here.
        """
        rating = parse_outcome(outcome)
        self.card_store.get(card_id)
        ts = reviewed_at or datetime.now(timezone.utc)

        logger.debug(f"Processing review for card {card_id} with outcome {rating.name}")

        with self._lock:
            try:
                before = self.current_state(card_id)
                after = self.scheduler.compute_next(before, rating, ts)
                entry = ReviewLogEntry.from_transition(
                    before, after, rating, user_id=self.store.user_id
                )
                self.store.record_review(entry, after)
            except Exception:
                logger.exception(f"Failed to process review for card {card_id}")
                raise

        logger.debug(
            f"Review processed for card {card_id}. "
            f"Next due: {after.due_at}, interval: {after.interval_days}d"
        )
        return after

    def reset_state(self, card_id: str) -> ReviewState:
        """
        Overwrite a card's state with a fresh one.

        The recovery path for InvalidStateError: the card starts over rather
        than having its corrupted values guessed at.
        """
        self.card_store.get(card_id)
        fresh = self._initial_state(card_id)
        with self._lock:
            self.store.save({card_id: fresh})
        logger.info(f"Reset review state of card {card_id}.")
        return fresh
