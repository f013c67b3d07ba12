# flashreview/scheduler.py

"""
Defines the BaseScheduler abstract class and the SM-2 derived scheduler used
by flashreview.
"""

import datetime
import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .constants import (
    AGAIN_EASE_PENALTY,
    DEFAULT_EASE_FACTOR,
    DEFAULT_MAX_INTERVAL_DAYS,
    EASE_ADJUSTMENTS,
    EASE_FACTOR_PRECISION,
    GRADUATING_INTERVALS,
    MINIMUM_EASE_FACTOR,
    RELEARN_INTERVAL_DAYS,
)
from .exceptions import InvalidStateError
from .models import ReviewOutcome, ReviewState, ensure_utc, parse_outcome

logger = logging.getLogger(__name__)


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers in flashreview.
    """

    @abstractmethod
    def compute_next(
        self,
        state: ReviewState,
        outcome: ReviewOutcome,
        now: datetime.datetime,
    ) -> ReviewState:
        """
        Computes the next review state of a card from its current state and a
        review outcome.

        Args:
            state: The card's current ReviewState.
            outcome: The outcome of this review (Again, Hard, Good, Easy).
            now: The UTC timestamp of the review.

        Returns:
            A new ReviewState. The input state is left untouched.

        Raises:
            InvalidOutcomeError: If the outcome is not one of the four values.
            InvalidStateError: If the input state violates its invariants.
        """
        pass


class SM2SchedulerConfig(BaseModel):
    """Configuration for the SM-2 scheduler."""

    initial_ease_factor: float = Field(
        default=DEFAULT_EASE_FACTOR, ge=MINIMUM_EASE_FACTOR
    )
    minimum_ease_factor: float = Field(default=MINIMUM_EASE_FACTOR, gt=0)
    again_ease_penalty: float = Field(default=AGAIN_EASE_PENALTY, ge=0)
    ease_adjustments: Dict[str, float] = Field(
        default_factory=lambda: dict(EASE_ADJUSTMENTS)
    )
    graduating_intervals: Tuple[int, ...] = Field(
        default_factory=lambda: tuple(GRADUATING_INTERVALS)
    )
    relearn_interval_days: int = Field(default=RELEARN_INTERVAL_DAYS, ge=1)
    max_interval_days: int = Field(default=DEFAULT_MAX_INTERVAL_DAYS, ge=1)

    @field_validator("ease_adjustments")
    @classmethod
    def check_adjustment_keys(cls, v: Dict[str, float]) -> Dict[str, float]:
        expected = {"Hard", "Good", "Easy"}
        if set(v) != expected:
            raise ValueError(
                f"ease_adjustments must have exactly the keys {sorted(expected)}."
            )
        return v

    @field_validator("graduating_intervals")
    @classmethod
    def check_graduating_intervals(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        if not v or any(days < 1 for days in v):
            raise ValueError("graduating_intervals must be positive day counts.")
        return v


class SM2Scheduler(BaseScheduler):
    """
    SuperMemo 2 derived scheduler.

    A failed recall (Again) resets the repetition streak and brings the card
    back the next day. Successful recalls use fixed intervals for the first
    repetitions and then grow the interval by the ease factor, which itself
    drifts with the outcome. Intervals are clamped to ``max_interval_days``.
    """

    def __init__(self, config: Optional[SM2SchedulerConfig] = None):
        if config is None:
            config = SM2SchedulerConfig()
        self.config = config

    def _next_ease(self, ease_factor: float, outcome: ReviewOutcome) -> float:
        if outcome is ReviewOutcome.Again:
            delta = -self.config.again_ease_penalty
        else:
            delta = self.config.ease_adjustments[outcome.name]
        new_ease = max(self.config.minimum_ease_factor, ease_factor + delta)
        return round(new_ease, EASE_FACTOR_PRECISION)

    def _next_interval(
        self, interval_days: int, ease_factor: float, repetitions: int
    ) -> int:
        """Interval for a successful review that brings the streak to
        ``repetitions``."""
        steps = self.config.graduating_intervals
        if repetitions <= len(steps):
            interval = steps[repetitions - 1]
        else:
            interval = max(1, math.ceil(interval_days * ease_factor))
        return min(interval, self.config.max_interval_days)

    def compute_next(
        self,
        state: ReviewState,
        outcome: ReviewOutcome,
        now: datetime.datetime,
    ) -> ReviewState:
        rating = parse_outcome(outcome)
        state.check_invariants()

        review_ts = ensure_utc(now)
        if (
            state.last_reviewed_at is not None
            and review_ts < state.last_reviewed_at
        ):
            raise InvalidStateError(
                f"Review time {review_ts.isoformat()} precedes the last review "
                f"of card '{state.card_id}' at "
                f"{state.last_reviewed_at.isoformat()}.",
                card_id=state.card_id,
            )

        new_ease = self._next_ease(state.ease_factor, rating)
        if rating is ReviewOutcome.Again:
            repetitions = 0
            interval_days = min(
                self.config.relearn_interval_days,
                self.config.max_interval_days,
            )
        else:
            repetitions = state.repetitions + 1
            interval_days = self._next_interval(
                state.interval_days, new_ease, repetitions
            )

        next_state = ReviewState(
            card_id=state.card_id,
            ease_factor=new_ease,
            interval_days=interval_days,
            repetitions=repetitions,
            due_at=review_ts + datetime.timedelta(days=interval_days),
            last_reviewed_at=review_ts,
        )
        logger.debug(
            f"Card {state.card_id}: {rating.name} -> interval {interval_days}d, "
            f"ease {state.ease_factor} -> {new_ease}, reps {repetitions}"
        )
        return next_state


_default_scheduler = SM2Scheduler()


def compute_next(
    state: ReviewState,
    outcome: ReviewOutcome,
    now: datetime.datetime,
    config: Optional[SM2SchedulerConfig] = None,
) -> ReviewState:
    """
    Functional entry point: next ReviewState for ``state`` after ``outcome``.

    Uses the default SM-2 configuration unless ``config`` is given.
    """
    scheduler = _default_scheduler if config is None else SM2Scheduler(config)
    return scheduler.compute_next(state, outcome, now)
