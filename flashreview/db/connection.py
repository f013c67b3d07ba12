"""
Lazy DuckDB connection for the review state database.
"""

import duckdb
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class ConnectionHandler:
    """
    Owns at most one open DuckDB connection for a review state database.

    The connection is opened on first use and can be reopened after
    ``close_connection``.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Parameters:
            db_path: Database file, or ":memory:" (any case) for a throwaway
                in-memory database. File paths are made absolute.
            read_only: Open the file without write access.
        """
        in_memory = isinstance(db_path, str) and db_path.lower() == MEMORY_PATH
        self.db_path_resolved = (
            Path(MEMORY_PATH) if in_memory else Path(db_path).resolve()
        )
        self.read_only: bool = read_only
        # Set when the connection is opened: True if there was nothing on disk.
        self.is_new_db: bool = False
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        logger.info(
            f"Review state database location: {self.db_path_resolved}"
            + (" (read-only)" if read_only else "")
        )

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def _prepare_location(self) -> None:
        if self.is_memory:
            self.is_new_db = True
            return
        self.is_new_db = not self.db_path_resolved.exists()
        if self.is_new_db and not self.read_only:
            self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, opening it first if needed.

        Raises:
            DatabaseConnectionError: If DuckDB refuses the connection (missing
                file in read-only mode, file locked by another writer, ...).
        """
        if self._connection is not None:
            return self._connection

        self._prepare_location()
        try:
            self._connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
        except duckdb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to database at {self.db_path_resolved}: {e}",
                original_exception=e,
            ) from e
        logger.debug(
            f"Opened {'new' if self.is_new_db else 'existing'} database "
            f"{self.db_path_resolved}."
        )
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open. Close errors are logged only."""
        conn, self._connection = self._connection, None
        if conn is None:
            return
        try:
            conn.close()
        except duckdb.Error as e:
            logger.error(f"Error closing {self.db_path_resolved}: {e}")
        else:
            logger.debug(f"Closed database {self.db_path_resolved}.")

    def __enter__(self) -> duckdb.DuckDBPyConnection:
        return self.get_connection()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()
