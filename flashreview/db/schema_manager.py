import duckdb
import logging

from .connection import ConnectionHandler
from . import schema
from ..exceptions import DatabaseConnectionError, SchemaInitializationError
from .. import config as flashreview_config

logger = logging.getLogger(__name__)

# Dropped in dependency order when tables are force-recreated.
_DROP_STATEMENTS = (
    "DROP TABLE IF EXISTS review_log CASCADE;",
    "DROP SEQUENCE IF EXISTS review_log_seq CASCADE;",
    "DROP TABLE IF EXISTS review_states CASCADE;",
)

_DATA_TABLES = ("review_states", "review_log")


class SchemaManager:
    """Creates the review state tables and guards their destruction."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create any missing tables in one transaction.

        With ``force_recreate_tables`` the existing tables are dropped first,
        which is refused for a file database that still holds review data
        (unless ``testing_mode`` is set). A read-only file database is left
        untouched.

        Raises:
            DatabaseConnectionError: Force-recreate requested on a read-only database.
            SchemaInitializationError: DuckDB failed while creating the schema.
            ValueError: Force-recreate would destroy stored review data.
        """
        if self._skip_for_read_only(force_recreate_tables):
            return

        location = self._handler.db_path_resolved
        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                if force_recreate_tables:
                    self._drop_tables(cursor)
                cursor.execute(schema.DB_SCHEMA_SQL)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Schema initialization failed for {location}: {e}")
            self._rollback(conn)
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e
        logger.info(f"Review state schema ready at {location}.")

    def _skip_for_read_only(self, force_recreate_tables: bool) -> bool:
        if not self._handler.read_only:
            return False
        if force_recreate_tables:
            raise DatabaseConnectionError(
                "Cannot recreate tables of a read-only database."
            )
        if self._handler.is_memory:
            return False
        logger.warning("Database opened read-only; schema initialization skipped.")
        return True

    @staticmethod
    def _rollback(conn: duckdb.DuckDBPyConnection) -> None:
        if conn is None or getattr(conn, "closed", True):
            return
        try:
            conn.rollback()
            logger.info("Rolled back schema initialization.")
        except duckdb.Error as rb_err:
            logger.error(f"Failed to rollback transaction: {rb_err}")

    def _count_rows(self, cursor: duckdb.DuckDBPyConnection) -> dict:
        present = {
            row[0]
            for row in cursor.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_name IN ('review_states', 'review_log');"
            ).fetchall()
        }
        counts = {}
        for table in _DATA_TABLES:
            if table in present:
                row = cursor.execute(f"SELECT COUNT(*) FROM {table};").fetchone()
                counts[table] = row[0] if row else 0
            else:
                counts[table] = 0
        return counts

    def _check_no_review_data(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Refuse to drop tables that still hold review states or history."""
        if self._handler.is_memory or flashreview_config.settings.testing_mode:
            return
        try:
            counts = self._count_rows(cursor)
        except duckdb.Error as e:
            message = (
                "Could not check the review tables for data before dropping "
                f"them; refusing to continue. Error: {e}"
            )
            logger.error(message)
            raise ValueError(message) from e

        if any(counts.values()):
            message = (
                "Refusing to drop tables with existing data: "
                f"{counts['review_states']} review states, "
                f"{counts['review_log']} logged reviews. "
                "Use backup/restore instead."
            )
            logger.error(message)
            raise ValueError(message)

    def _drop_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._check_no_review_data(cursor)
        logger.warning(
            f"Recreating review tables in {self._handler.db_path_resolved}; "
            "all stored review state is discarded."
        )
        for statement in _DROP_STATEMENTS:
            cursor.execute(statement)
