"""
DuckDB persistence for review state.
Implements ReviewStateDatabase, the durable ReviewStateStore.
"""

import duckdb
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..constants import DEFAULT_USER_ID
from ..exceptions import (
    DatabaseConnectionError,
    MarshallingError,
    PersistenceError,
    ReviewStateOperationError,
)
from ..models import ReviewLogEntry, ReviewState
from ..store import ReviewStateStore
from . import db_utils
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

# --- Logging Setup ---
logger = logging.getLogger(__name__)

# --- Helper Functions ---


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Rows of the last query as dicts keyed by column name."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


class ReviewStateDatabase(ReviewStateStore):
    """
    DuckDB-backed ReviewStateStore for one user: current review states plus
    the append-only review log.

    Connection handling, schema setup and row marshalling live in their own
    modules; this class only issues the queries. Use it as a context manager.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        user_id: str = DEFAULT_USER_ID,
        read_only: bool = False,
    ):
        """
        Create a ReviewStateDatabase backed by the given DuckDB path.

        Args:
            db_path (str | Path): Database file, or ':memory:' for a throwaway database.
            user_id (str): Partition key; every read and write is scoped to this user.
            read_only (bool): Reads only; every write raises DatabaseConnectionError.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        self.user_id = user_id
        logger.info(
            f"ReviewStateDatabase initialized for DB at: {self._handler.db_path_resolved} (user '{user_id}')"  # noqa: E501
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    @property
    def lock_key(self) -> Optional[Tuple[str, str]]:
        # every :memory: connection is a separate database
        if self._handler.is_memory:
            return None
        return (str(self._handler.db_path_resolved), self.user_id)

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "ReviewStateDatabase":
        """
        Open the connection; a database file that did not exist yet gets its
        tables created.
        """
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the connection, even when the block raised."""
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    def _ensure_writable(self, action: str) -> None:
        if self.read_only:
            raise DatabaseConnectionError(
                f"Cannot {action} in read-only mode."
            )

    def _rollback(self, conn, context: str) -> None:
        """Attempt a rollback; a rollback failure is logged, never raised."""
        if conn and not getattr(conn, "closed", True):
            try:
                conn.rollback()
                logger.info(f"Transaction rolled back due to {context} error.")
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")

    # --- Review State Operations ---
    # fmt: off
    _UPSERT_STATE_SQL = """
        INSERT INTO review_states (user_id, card_id, ease_factor, interval_days,
                                   repetitions, due_at, last_reviewed_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (user_id, card_id) DO UPDATE SET
            ease_factor = EXCLUDED.ease_factor,
            interval_days = EXCLUDED.interval_days,
            repetitions = EXCLUDED.repetitions,
            due_at = EXCLUDED.due_at,
            last_reviewed_at = EXCLUDED.last_reviewed_at;
        """

    _INSERT_LOG_SQL = """
        INSERT INTO review_log (user_id, card_id, outcome, reviewed_at, ease_before,
                                ease_after, interval_days, repetitions, due_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        RETURNING review_id;
        """
    # fmt: on

    def load(self) -> Dict[str, ReviewState]:
        """
        Load every review state of this user, keyed by card id.

        Raises:
            ReviewStateOperationError: On a database error or an unparseable row.
        """
        conn = self.get_connection()
        sql = "SELECT * FROM review_states WHERE user_id = $1 ORDER BY card_id;"
        try:
            cursor = conn.execute(sql, (self.user_id,))
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error loading review states for '{self.user_id}': {e}")
            raise ReviewStateOperationError(
                f"Failed to load review states: {e}", original_exception=e
            ) from e

        try:
            states = [db_utils.db_row_to_review_state(row) for row in rows]
        except MarshallingError as e:
            raise ReviewStateOperationError(
                "Failed to parse review states from database.",
                original_exception=e,
            ) from e
        logger.debug(f"Loaded {len(states)} review states for '{self.user_id}'.")
        return {state.card_id: state for state in states}

    def get(self, card_id: str) -> Optional[ReviewState]:
        conn = self.get_connection()
        sql = "SELECT * FROM review_states WHERE user_id = $1 AND card_id = $2;"
        try:
            rows = _rows_to_dicts(conn.execute(sql, (self.user_id, card_id)))
        except duckdb.Error as e:
            logger.error(f"Error fetching review state for {card_id}: {e}")
            raise ReviewStateOperationError(
                f"Failed to fetch review state: {e}", original_exception=e
            ) from e
        if not rows:
            return None
        try:
            return db_utils.db_row_to_review_state(rows[0])
        except MarshallingError as e:
            raise ReviewStateOperationError(
                f"Failed to parse review state for card '{card_id}'.",
                original_exception=e,
            ) from e

    def _state_params(
        self, states: Mapping[str, ReviewState]
    ) -> List[Tuple]:
        params = []
        for card_id, state in states.items():
            if card_id != state.card_id:
                raise ReviewStateOperationError(
                    f"State keyed as '{card_id}' belongs to '{state.card_id}'."
                )
            params.append(db_utils.review_state_to_db_params(self.user_id, state))
        return params

    def save(self, states: Mapping[str, ReviewState]) -> None:
        """
        Upsert the given states in a single transaction; an empty mapping is a no-op.

        Raises:
            DatabaseConnectionError: If the database is read-only.
            ReviewStateOperationError: If the batch cannot be written.
        """
        self._ensure_writable("save review states")
        if not states:
            return
        params_list = self._state_params(states)

        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.executemany(self._UPSERT_STATE_SQL, params_list)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error during batch review state upsert: {e}")
            self._rollback(conn, "review state upsert")
            raise ReviewStateOperationError(
                f"Batch review state upsert failed: {e}", original_exception=e
            ) from e
        logger.info(f"Saved {len(params_list)} review states for '{self.user_id}'.")

    def record_review(
        self, entry: ReviewLogEntry, new_state: ReviewState
    ) -> None:
        """
        Append ``entry`` to the review log and upsert ``new_state`` atomically.

        Raises:
            DatabaseConnectionError: If the database is read-only.
            ReviewStateOperationError: If the transaction fails.
        """
        self._ensure_writable("record a review")
        if entry.card_id != new_state.card_id:
            raise ReviewStateOperationError(
                f"Log entry for '{entry.card_id}' does not match state "
                f"for '{new_state.card_id}'."
            )
        log_params = db_utils.review_log_entry_to_db_params(
            entry.model_copy(update={"user_id": self.user_id})
        )
        state_params = db_utils.review_state_to_db_params(self.user_id, new_state)

        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.execute(self._INSERT_LOG_SQL, log_params)
                result = cursor.fetchone()
                if not result:
                    raise ReviewStateOperationError(
                        "Failed to retrieve review_id after insertion."
                    )
                cursor.execute(self._UPSERT_STATE_SQL, state_params)
                cursor.commit()
        except Exception as e:
            logger.error(f"Error during review log and state transaction: {e}")
            self._rollback(conn, "review/state")
            if isinstance(e, PersistenceError):
                raise
            raise ReviewStateOperationError(
                f"Failed to record review: {e}", original_exception=e
            ) from e
        logger.debug(f"Recorded review {result[0]} for card {entry.card_id}.")

    def delete(self, card_ids: Iterable[str]) -> int:
        """
        Delete review states (not the log) for the given card ids.

        Returns:
            The number of states removed.
        """
        self._ensure_writable("delete review states")
        ids = list(card_ids)
        if not ids:
            return 0

        conn = self.get_connection()
        where = "WHERE user_id = $1 AND card_id IN (SELECT * FROM UNNEST($2))"
        params = (self.user_id, ids)
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                result = cursor.execute(
                    f"SELECT COUNT(*) FROM review_states {where};", params
                ).fetchone()
                cursor.execute(f"DELETE FROM review_states {where};", params)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Failed to delete review states: {e}")
            self._rollback(conn, "delete")
            raise ReviewStateOperationError(
                f"Batch review state delete failed: {e}", original_exception=e
            ) from e
        removed = result[0] if result else 0
        logger.info(f"Deleted {removed} review states for '{self.user_id}'.")
        return removed

    # --- Review Log Operations ---

    def review_log(self, card_id: Optional[str] = None) -> List[ReviewLogEntry]:
        conn = self.get_connection()
        sql = "SELECT * FROM review_log WHERE user_id = $1"
        params: List[Any] = [self.user_id]
        if card_id is not None:
            sql += " AND card_id = $2"
            params.append(card_id)
        sql += " ORDER BY reviewed_at ASC, review_id ASC;"
        try:
            rows = _rows_to_dicts(conn.execute(sql, params))
        except duckdb.Error as e:
            logger.error(f"Error fetching review log: {e}")
            raise ReviewStateOperationError(
                f"Failed to fetch review log: {e}", original_exception=e
            ) from e
        try:
            return [db_utils.db_row_to_review_log_entry(row) for row in rows]
        except MarshallingError as e:
            raise ReviewStateOperationError(
                "Failed to parse review log from database.",
                original_exception=e,
            ) from e

    def get_database_stats(self) -> Dict[str, Any]:
        """
        Aggregate counts for this user.

        Returns:
            dict: ``total_states``, ``total_reviews`` and ``outcomes``
            (outcome name -> count).
        """
        conn = self.get_connection()
        try:
            states_row = conn.execute(
                "SELECT COUNT(*) FROM review_states WHERE user_id = $1;",
                (self.user_id,),
            ).fetchone()
            outcome_rows = conn.execute(
                "SELECT outcome, COUNT(*) FROM review_log "
                "WHERE user_id = $1 GROUP BY outcome;",
                (self.user_id,),
            ).fetchall()
        except duckdb.Error as e:
            logger.error(f"Could not retrieve database stats due to an error: {e}")
            raise ReviewStateOperationError(
                "Could not retrieve database stats.", original_exception=e
            ) from e

        outcomes = {name: count for name, count in outcome_rows}
        return {
            "total_states": states_row[0] if states_row else 0,
            "total_reviews": sum(outcomes.values()),
            "outcomes": outcomes,
        }
