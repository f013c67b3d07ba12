"""
Persistence port for review state.

The scheduler and selector never talk to storage; an orchestrating caller
loads a snapshot through a ReviewStateStore, computes, and writes back.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Hashable, Iterable, List, Mapping, Optional

from .constants import DEFAULT_USER_ID
from .models import ReviewLogEntry, ReviewState

logger = logging.getLogger(__name__)


class ReviewStateStore(ABC):
    """
    Port for loading and saving review states of one user.

    Implementations:
        - InMemoryReviewStateStore: dict-backed, for tests and throwaway runs.
        - ReviewStateDatabase: DuckDB-backed (flashreview.db).
    """

    user_id: str = DEFAULT_USER_ID

    @property
    def lock_key(self) -> Optional[Hashable]:
        """
        Identity of the backing storage for write serialization. Stores
        returning equal keys share one write lock; None means the instance
        is its own storage.
        """
        return None

    @abstractmethod
    def load(self) -> Dict[str, ReviewState]:
        """Return every stored state keyed by card id."""
        pass

    @abstractmethod
    def save(self, states: Mapping[str, ReviewState]) -> None:
        """Upsert the given states as one atomic batch."""
        pass

    @abstractmethod
    def record_review(
        self, entry: ReviewLogEntry, new_state: ReviewState
    ) -> None:
        """Atomically store ``new_state`` and append ``entry`` to the log."""
        pass

    @abstractmethod
    def delete(self, card_ids: Iterable[str]) -> int:
        """Remove states for the given ids. Returns the number removed."""
        pass

    @abstractmethod
    def review_log(self, card_id: Optional[str] = None) -> List[ReviewLogEntry]:
        """Applied reviews, oldest first, optionally for one card."""
        pass

    def get(self, card_id: str) -> Optional[ReviewState]:
        return self.load().get(card_id)


class InMemoryReviewStateStore(ReviewStateStore):
    """Dict-backed store. Copies on the way in and out so callers cannot
    mutate stored state behind its back."""

    def __init__(
        self,
        states: Optional[Mapping[str, ReviewState]] = None,
        user_id: str = DEFAULT_USER_ID,
    ):
        self.user_id = user_id
        self._states: Dict[str, ReviewState] = {}
        self._log: List[ReviewLogEntry] = []
        if states:
            self.save(states)

    def load(self) -> Dict[str, ReviewState]:
        return {
            card_id: state.model_copy()
            for card_id, state in self._states.items()
        }

    def save(self, states: Mapping[str, ReviewState]) -> None:
        for card_id, state in states.items():
            if card_id != state.card_id:
                raise ValueError(
                    f"State keyed as '{card_id}' belongs to '{state.card_id}'."
                )
        self._states.update(
            {card_id: state.model_copy() for card_id, state in states.items()}
        )
        logger.debug(f"Saved {len(states)} review states in memory.")

    def get(self, card_id: str) -> Optional[ReviewState]:
        state = self._states.get(card_id)
        return state.model_copy() if state is not None else None

    def record_review(
        self, entry: ReviewLogEntry, new_state: ReviewState
    ) -> None:
        self.save({new_state.card_id: new_state})
        self._log.append(
            entry.model_copy(update={"review_id": len(self._log) + 1})
        )

    def delete(self, card_ids: Iterable[str]) -> int:
        removed = 0
        for card_id in card_ids:
            if self._states.pop(card_id, None) is not None:
                removed += 1
        return removed

    def review_log(self, card_id: Optional[str] = None) -> List[ReviewLogEntry]:
        return [
            entry.model_copy()
            for entry in self._log
            if card_id is None or entry.card_id == card_id
        ]
