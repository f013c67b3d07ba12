"""Database package for flashreview.

Provides the DuckDB-backed review state store. Only ReviewStateDatabase is
exported as the public API.
"""

from .database import ReviewStateDatabase

__all__ = ["ReviewStateDatabase"]
