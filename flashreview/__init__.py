"""Flashreview - SM-2 spaced repetition over a flash-card corpus."""

from .models import Card, ReviewOutcome, ReviewState, ReviewLogEntry, Session
from .constants import DEFAULT_EASE_FACTOR, MINIMUM_EASE_FACTOR
from .corpus import CardStore, load_card_store
from .db import ReviewStateDatabase
from .scheduler import SM2Scheduler, SM2SchedulerConfig, compute_next
from .selector import select_due
from .store import InMemoryReviewStateStore, ReviewStateStore

__all__ = [
    "Card",
    "ReviewOutcome",
    "ReviewState",
    "ReviewLogEntry",
    "Session",
    "DEFAULT_EASE_FACTOR",
    "MINIMUM_EASE_FACTOR",
    "CardStore",
    "load_card_store",
    "ReviewStateDatabase",
    "SM2Scheduler",
    "SM2SchedulerConfig",
    "compute_next",
    "select_due",
    "InMemoryReviewStateStore",
    "ReviewStateStore",
]
