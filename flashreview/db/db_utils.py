"""
Row conversion for the review tables and file-level backups of the
review state database.
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from ..exceptions import MarshallingError
from ..models import ReviewLogEntry, ReviewOutcome, ReviewState, ensure_utc


def to_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to the naive UTC value stored in DuckDB."""
    if ts is None:
        return None
    return ensure_utc(ts).replace(tzinfo=None)


def from_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Interpret a naive DuckDB timestamp as UTC."""
    if ts is None:
        return None
    return ts.replace(tzinfo=timezone.utc)


def review_state_to_db_params(user_id: str, state: ReviewState) -> Tuple:
    """
    Convert a ReviewState into a tuple for the review_states upsert.

    Returns:
        tuple: (user_id, card_id, ease_factor, interval_days, repetitions,
                due_at, last_reviewed_at)
    """
    return (
        user_id,
        state.card_id,
        state.ease_factor,
        state.interval_days,
        state.repetitions,
        to_db_timestamp(state.due_at),
        to_db_timestamp(state.last_reviewed_at),
    )


def db_row_to_review_state(row_dict: Dict[str, Any]) -> ReviewState:
    """
    Create a ReviewState from a review_states row.

    Raises:
        MarshallingError: If the row cannot be validated into a ReviewState.
    """
    data = row_dict.copy()
    data.pop("user_id", None)
    data["due_at"] = from_db_timestamp(data.get("due_at"))
    data["last_reviewed_at"] = from_db_timestamp(data.get("last_reviewed_at"))
    try:
        return ReviewState(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse review state from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def review_log_entry_to_db_params(entry: ReviewLogEntry) -> Tuple:
    """
    Convert a ReviewLogEntry into a tuple for insertion into review_log.

    Returns:
        tuple: (user_id, card_id, outcome, reviewed_at, ease_before,
                ease_after, interval_days, repetitions, due_at)
    """
    return (
        entry.user_id,
        entry.card_id,
        entry.outcome.name,
        to_db_timestamp(entry.reviewed_at),
        entry.ease_before,
        entry.ease_after,
        entry.interval_days,
        entry.repetitions,
        to_db_timestamp(entry.due_at),
    )


def db_row_to_review_log_entry(row_dict: Dict[str, Any]) -> ReviewLogEntry:
    """Converts a review_log row into a ReviewLogEntry."""
    data = row_dict.copy()
    try:
        data["outcome"] = ReviewOutcome[data["outcome"]]
        data["reviewed_at"] = from_db_timestamp(data["reviewed_at"])
        data["due_at"] = from_db_timestamp(data["due_at"])
        return ReviewLogEntry(**data)
    except (KeyError, ValidationError) as e:
        raise MarshallingError(
            f"Failed to parse review log entry from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def find_latest_backup(db_path: Path) -> Optional[Path]:
    """
    Newest file in the "backups" directory next to ``db_path`` that was
    written by ``backup_database`` for it, or None.
    """
    backup_dir = db_path.parent / "backups"
    if not backup_dir.exists():
        return None

    backup_files = list(
        backup_dir.glob(f"{db_path.stem}-backup-*{db_path.suffix}")
    )
    if not backup_files:
        return None

    # timestamped names sort chronologically
    return max(backup_files, key=lambda p: p.name)


def backup_database(db_path: Path) -> Path:
    """
    Copy the database file to backups/<stem>-backup-<timestamp><suffix>.

    Returns the copy's path, or ``db_path`` itself when nothing exists on
    disk yet.
    """
    if not db_path.exists():
        return db_path

    backup_dir = db_path.parent / "backups"
    backup_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    backup_filename = f"{db_path.stem}-backup-{timestamp}{db_path.suffix}"
    backup_path = backup_dir / backup_filename

    shutil.copy2(db_path, backup_path)
    return backup_path
