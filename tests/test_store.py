import pytest
from datetime import datetime, timedelta, timezone

from flashreview.models import ReviewLogEntry, ReviewOutcome, ReviewState
from flashreview.store import InMemoryReviewStateStore

UTC = timezone.utc


def _reviewed(card_id: str) -> ReviewState:
    reviewed_at = datetime(2024, 1, 1, tzinfo=UTC)
    return ReviewState(
        card_id=card_id,
        interval_days=1,
        repetitions=1,
        last_reviewed_at=reviewed_at,
        due_at=reviewed_at + timedelta(days=1),
    )


def test_load_of_empty_store(memory_store: InMemoryReviewStateStore):
    assert memory_store.load() == {}
    assert memory_store.get("card-1") is None


def test_save_then_load(memory_store: InMemoryReviewStateStore):
    memory_store.save({"card-1": _reviewed("card-1")})
    loaded = memory_store.load()
    assert loaded == {"card-1": _reviewed("card-1")}


def test_save_of_loaded_map_is_a_no_op(memory_store: InMemoryReviewStateStore):
    memory_store.save({"a": _reviewed("a"), "b": ReviewState.fresh("b")})
    before = memory_store.load()
    memory_store.save(memory_store.load())
    assert memory_store.load() == before


def test_returned_states_are_copies(memory_store: InMemoryReviewStateStore):
    memory_store.save({"a": _reviewed("a")})
    loaded = memory_store.load()
    loaded["a"].repetitions = 99
    assert memory_store.get("a").repetitions == 1


def test_mismatched_key_is_rejected(memory_store: InMemoryReviewStateStore):
    with pytest.raises(ValueError, match="belongs to"):
        memory_store.save({"a": _reviewed("b")})


def test_record_review_appends_log(memory_store: InMemoryReviewStateStore):
    after = _reviewed("a")
    entry = ReviewLogEntry.from_transition(
        ReviewState.fresh("a"), after, ReviewOutcome.Good
    )
    memory_store.record_review(entry, after)
    memory_store.record_review(entry, after)

    assert memory_store.get("a") == after
    log = memory_store.review_log()
    assert [e.review_id for e in log] == [1, 2]
    assert memory_store.review_log("other") == []


def test_delete_counts_removed_states(memory_store: InMemoryReviewStateStore):
    memory_store.save({"a": _reviewed("a"), "b": _reviewed("b")})
    assert memory_store.delete(["a", "missing"]) == 1
    assert list(memory_store.load()) == ["b"]


def test_initial_states_and_user():
    store = InMemoryReviewStateStore({"a": _reviewed("a")}, user_id="alice")
    assert store.user_id == "alice"
    assert "a" in store.load()
