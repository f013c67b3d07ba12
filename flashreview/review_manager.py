"""
This module defines the ReviewSessionManager class, which is responsible for
running one review session: it selects due cards, hands them out one by one,
and records outcomes through the ReviewProcessor.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from .constants import DEFAULT_SESSION_LIMIT
from .corpus import CardStore
from .models import Card, ReviewOutcome, ReviewState, Session
from .review_processor import ReviewProcessor
from .scheduler import BaseScheduler
from .selector import count_due, select_due
from .store import ReviewStateStore

logger = logging.getLogger(__name__)


class ReviewSessionManager:
    """
    Manages a review session for flashcards.

    This class is responsible for:
    - Building the session queue from the card store and stored states.
    - Providing cards one by one for review.
    - Passing outcomes to the ReviewProcessor, which persists them.
    """

    def __init__(
        self,
        card_store: CardStore,
        store: ReviewStateStore,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.card_store = card_store
        self.store = store
        self.review_processor = ReviewProcessor(card_store, store, scheduler)
        self.session: Optional[Session] = None

    def initialize_session(
        self,
        limit: int = DEFAULT_SESSION_LIMIT,
        now: Optional[datetime] = None,
    ) -> Session:
        """
        Select the cards due at ``now`` (default: current UTC time), capped at
        ``limit``, and start a new session with them.
        """
        now = now or datetime.now(timezone.utc)
        states = self.store.load()
        card_ids = select_due(self.card_store, states, now, max(limit, 0))
        self.session = Session(
            created_at=now, limit=max(limit, 0), card_ids=card_ids
        )
        logger.info(
            f"Initialized session {self.session.session_uuid} with {len(card_ids)} cards."
        )
        return self.session

    def _require_session(self) -> Session:
        if self.session is None:
            raise RuntimeError("No active session. Call initialize_session first.")
        return self.session

    def get_next_card(self) -> Optional[Card]:
        """
        Retrieves the next card to be reviewed.

        Returns:
            The next Card, or None once every card in the session is reviewed.
        """
        session = self._require_session()
        remaining = session.remaining
        if not remaining:
            logger.info("Review queue is empty. Session may be complete.")
            return None
        return self.card_store.get(remaining[0])

    def submit_review(
        self,
        card_id: str,
        outcome: Union[ReviewOutcome, int, str],
        reviewed_at: Optional[datetime] = None,
    ) -> ReviewState:
        """
        Submit an outcome for a card in the current session.

        Raises:
            ValueError: If the card is not part of the current session.
        """
        session = self._require_session()
        if card_id not in session.remaining:
            raise ValueError(
                f"Card {card_id} not found in the current review session."
            )
        new_state = self.review_processor.process_review(
            card_id, outcome, reviewed_at=reviewed_at
        )
        session.mark_reviewed(card_id)
        return new_state

    def skip_card(self, card_id: str) -> None:
        """Leave ``card_id`` unreviewed and move on to the next card."""
        self._require_session().mark_skipped(card_id)
        logger.info(f"Skipped card {card_id} for the rest of the session.")

    def get_session_stats(self) -> Dict[str, int]:
        """
        Returns:
            dict: ``total_cards`` selected, ``reviewed_cards`` and ``skipped_cards``
                so far.
        """
        session = self._require_session()
        return {
            "total_cards": len(session.card_ids),
            "reviewed_cards": len(session.reviewed),
            "skipped_cards": len(session.skipped),
        }

    def get_due_card_count(self, now: Optional[datetime] = None) -> int:
        """Number of cards due at ``now``, regardless of any session limit."""
        now = now or datetime.now(timezone.utc)
        return count_due(self.card_store, self.store.load(), now)
