"""
Tests for ReviewProcessor, the orchestrator that loads state, runs the
scheduler and persists the result.
"""

import threading
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from flashreview.corpus import CardStore
from flashreview.db import ReviewStateDatabase
from flashreview.exceptions import (
    CardNotFoundError,
    InvalidOutcomeError,
    InvalidStateError,
    ReviewStateOperationError,
)
from flashreview.models import ReviewOutcome, ReviewState
from flashreview.review_processor import ReviewProcessor
from flashreview.scheduler import SM2Scheduler, SM2SchedulerConfig
from flashreview.store import InMemoryReviewStateStore

UTC = timezone.utc


@pytest.fixture
def processor(card_store: CardStore, memory_store: InMemoryReviewStateStore):
    return ReviewProcessor(card_store, memory_store)


class TestProcessReview:
    def test_first_review_creates_state_and_log(self, processor, memory_store, utc_now):
        new_state = processor.process_review("card-1", "good", reviewed_at=utc_now)

        assert new_state.repetitions == 1
        assert new_state.interval_days == 1
        assert new_state.due_at == utc_now + timedelta(days=1)
        assert memory_store.get("card-1") == new_state

        log = memory_store.review_log("card-1")
        assert len(log) == 1
        assert log[0].outcome is ReviewOutcome.Good
        assert log[0].ease_before == 2.5

    def test_successive_reviews_build_on_stored_state(self, processor, utc_now):
        first = processor.process_review("card-2", ReviewOutcome.Good, utc_now)
        second = processor.process_review("card-2", 2, first.due_at)
        third = processor.process_review("card-2", "Again", second.due_at)

        assert second.interval_days == 6
        assert second.repetitions == 2
        assert third.repetitions == 0
        assert third.interval_days == 1
        assert third.ease_factor == pytest.approx(2.3)

    def test_defaults_review_time_to_now(self, processor):
        before = datetime.now(UTC)
        state = processor.process_review("card-1", "easy")
        assert before <= state.last_reviewed_at <= datetime.now(UTC)

    def test_unknown_card_is_rejected(self, processor, memory_store, utc_now):
        with pytest.raises(CardNotFoundError):
            processor.process_review("nope", "good", utc_now)
        assert memory_store.load() == {}

    def test_invalid_outcome_is_rejected_before_any_write(
        self, processor, memory_store, utc_now
    ):
        with pytest.raises(InvalidOutcomeError):
            processor.process_review("card-1", "perfect", utc_now)
        assert memory_store.review_log() == []

    def test_corrupted_state_surfaces_and_reset_recovers(
        self, card_store, memory_store, utc_now
    ):
        memory_store.save({"card-1": ReviewState(card_id="card-1", ease_factor=0.9)})
        processor = ReviewProcessor(card_store, memory_store)

        with pytest.raises(InvalidStateError):
            processor.process_review("card-1", "good", utc_now)

        fresh = processor.reset_state("card-1")
        assert fresh.ease_factor == 2.5
        assert fresh.repetitions == 0
        assert processor.process_review("card-1", "good", utc_now).repetitions == 1

    def test_persistence_failure_propagates(self, card_store, utc_now):
        store = MagicMock(spec=InMemoryReviewStateStore)
        store.user_id = "default"
        store.get.return_value = None
        store.record_review.side_effect = ReviewStateOperationError("disk full")
        processor = ReviewProcessor(card_store, store)

        with pytest.raises(ReviewStateOperationError, match="disk full"):
            processor.process_review("card-1", "good", utc_now)
        store.record_review.assert_called_once()

    def test_custom_scheduler_is_used(self, card_store, memory_store, utc_now):
        scheduler = SM2Scheduler(
            SM2SchedulerConfig(initial_ease_factor=2.0, graduating_intervals=(2,))
        )
        processor = ReviewProcessor(card_store, memory_store, scheduler)
        state = processor.process_review("card-1", "good", utc_now)
        assert state.interval_days == 2
        assert state.ease_factor == 2.0


def test_current_state_defaults_to_fresh(processor):
    state = processor.current_state("card-3")
    assert state.is_new
    assert state.card_id == "card-3"


def test_reset_of_unknown_card_raises(processor):
    with pytest.raises(CardNotFoundError):
        processor.reset_state("missing")


def test_processors_on_one_store_share_a_lock(card_store, memory_store):
    a = ReviewProcessor(card_store, memory_store)
    b = ReviewProcessor(card_store, memory_store)
    c = ReviewProcessor(card_store, InMemoryReviewStateStore())
    assert a._lock is b._lock
    assert a._lock is not c._lock


def test_concurrent_submissions_do_not_lose_updates(card_store, memory_store, utc_now):
    """Each thread reviews the same card; every review must be applied."""
    processors = [ReviewProcessor(card_store, memory_store) for _ in range(8)]

    def submit(proc):
        proc.process_review("card-1", "hard", utc_now)

    threads = [threading.Thread(target=submit, args=(p,)) for p in processors]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert memory_store.get("card-1").repetitions == 8
    assert len(memory_store.review_log("card-1")) == 8


def test_databases_on_one_file_and_user_share_a_lock(card_store, db_path_file):
    first = ReviewStateDatabase(db_path_file)
    second = ReviewStateDatabase(db_path_file)
    other_user = ReviewStateDatabase(db_path_file, user_id="alice")
    assert ReviewProcessor(card_store, first)._lock is ReviewProcessor(
        card_store, second
    )._lock
    assert ReviewProcessor(card_store, first)._lock is not ReviewProcessor(
        card_store, other_user
    )._lock


def test_in_memory_databases_keep_separate_locks(card_store):
    a = ReviewStateDatabase(":memory:")
    b = ReviewStateDatabase(":memory:")
    assert ReviewProcessor(card_store, a)._lock is not ReviewProcessor(
        card_store, b
    )._lock


def test_concurrent_submissions_across_database_handles(
    card_store, db_path_file, utc_now
):
    with ReviewStateDatabase(db_path_file):
        pass
    handles = [ReviewStateDatabase(db_path_file) for _ in range(4)]
    for handle in handles:
        handle.get_connection()
    processors = [ReviewProcessor(card_store, h) for h in handles]

    def submit(proc):
        proc.process_review("card-1", "hard", utc_now)

    threads = [threading.Thread(target=submit, args=(p,)) for p in processors]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join()
    finally:
        for handle in handles:
            handle.close_connection()

    with ReviewStateDatabase(db_path_file) as db:
        assert db.get("card-1").repetitions == 4
        assert len(db.review_log("card-1")) == 4
