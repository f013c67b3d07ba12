from typing import Optional


class SchedulingError(Exception):
    """Base exception for errors raised while scheduling a review."""

    pass


class InvalidOutcomeError(SchedulingError, ValueError):
    """Raised when a review outcome is outside Again/Hard/Good/Easy."""

    def __init__(self, value: object):
        super().__init__(
            f"Invalid outcome: {value!r}. "
            "Must be one of Again, Hard, Good, Easy (0-3)."
        )
        self.value = value


class InvalidStateError(SchedulingError):
    """Raised when a review state violates its invariants.

    Usually means persisted state is corrupted. The recommended recovery is
    to reset the card to a fresh state.
    """

    def __init__(self, message: str, card_id: Optional[str] = None):
        super().__init__(message)
        self.card_id = card_id


class CardNotFoundError(KeyError):
    """Raised when a card id is not present in the card store."""

    def __init__(self, card_id: str):
        super().__init__(card_id)
        self.card_id = card_id

    def __str__(self) -> str:
        return f"Card '{self.card_id}' not found in the card store."


class CorpusError(Exception):
    """Raised when the card corpus cannot be loaded at all."""

    pass


class PersistenceError(Exception):
    """Base exception for persistence-related errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class DatabaseConnectionError(PersistenceError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(PersistenceError):
    """Raised for errors during schema setup."""

    pass


class ReviewStateOperationError(PersistenceError):
    """Raised for errors while loading or saving review states."""

    pass


class MarshallingError(PersistenceError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass
