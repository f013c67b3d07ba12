"""
Pydantic models for cards, answer content blocks, review state and sessions.
"""

from __future__ import annotations

import uuid
from enum import IntEnum
from uuid import UUID
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .constants import DEFAULT_EASE_FACTOR, DEFAULT_USER_ID, MINIMUM_EASE_FACTOR
from .exceptions import InvalidOutcomeError, InvalidStateError


def ensure_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime. Naive values are assumed UTC."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    if ts.tzinfo != timezone.utc:
        return ts.astimezone(timezone.utc)
    return ts


class ReviewOutcome(IntEnum):
    """
    The reviewer's judgement of their recall, ordered by quality.
    """

    Again = 0
    Hard = 1
    Good = 2
    Easy = 3


def parse_outcome(value: object) -> ReviewOutcome:
    """
    Coerce ``value`` into a ReviewOutcome.

    Accepts a ReviewOutcome, an int in 0-3, or an outcome name in any case
    (``"good"``, ``"EASY"``). Digit strings are accepted too so that CLI input
    can be passed straight through.

    Raises:
        InvalidOutcomeError: for anything else, including bools.
    """
    if isinstance(value, ReviewOutcome):
        return value
    if isinstance(value, bool):
        raise InvalidOutcomeError(value)
    if isinstance(value, int):
        try:
            return ReviewOutcome(value)
        except ValueError:
            raise InvalidOutcomeError(value) from None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_outcome(int(text))
        try:
            return ReviewOutcome[text.capitalize()]
        except KeyError:
            raise InvalidOutcomeError(value) from None
    raise InvalidOutcomeError(value)


# --- Answer content blocks ---


class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["text"] = "text"
    content: str


class CodeBlock(BaseModel):
    model_config = ConfigDict(
        frozen=True, extra="forbid", populate_by_name=True
    )

    type: Literal["code"] = "code"
    language: str = Field(default="csharp")
    code: str
    code_type: Literal["good", "bad", "neutral"] = Field(
        default="neutral",
        alias="codeType",
        description="Whether the snippet is a good or bad practice example.",
    )


class ListBlock(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["list"] = "list"
    items: List[str] = Field(default_factory=list)


class TableBlock(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["table"] = "table"
    headers: List[str] = Field(..., min_length=1)
    rows: List[List[str]] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_row_widths(self) -> "TableBlock":
        """Every row must have one cell per header."""
        width = len(self.headers)
        for idx, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Table row {idx} has {len(row)} cells, expected {width}."
                )
        return self


ContentBlock = Annotated[
    Union[TextBlock, CodeBlock, ListBlock, TableBlock],
    Field(discriminator="type"),
]


class Card(BaseModel):
    """
    One question/answer unit of the corpus, with provenance metadata.

    Cards are created once when the corpus is loaded and never mutated.
    """

    model_config = ConfigDict(
        frozen=True, extra="forbid", populate_by_name=True
    )

    id: str = Field(..., min_length=1, description="Unique card id.")
    question: str = Field(..., min_length=1)
    answer: List[ContentBlock] = Field(default_factory=list)
    topic: str = Field(default="General")
    category: Optional[str] = Field(
        default=None, description="Top level source folder (notes/practice)."
    )
    source: Optional[str] = Field(
        default=None, description="Provenance path of the source note."
    )
    is_section: bool = Field(default=False, alias="isSection")
    is_concept: bool = Field(default=False, alias="isConcept")

    @model_validator(mode="after")
    def check_kind_flags(self) -> "Card":
        if self.is_section and self.is_concept:
            raise ValueError(
                "A card cannot be both a section and a concept card."
            )
        return self

    @property
    def kind(self) -> str:
        """One of ``concept``, ``section`` or ``qa``."""
        if self.is_concept:
            return "concept"
        if self.is_section:
            return "section"
        return "qa"


class ReviewState(BaseModel):
    """
    Per-card scheduling state.

    ``ease_factor`` is deliberately not bounded here so that corrupted
    persisted rows still load; ``check_invariants`` reports them.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    card_id: str = Field(..., min_length=1)
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR)
    interval_days: int = Field(default=0, ge=0)
    repetitions: int = Field(
        default=0,
        ge=0,
        description="Consecutive successful reviews.",
    )
    due_at: Optional[datetime] = Field(
        default=None,
        description="UTC time the card is next due (None = due now).",
    )
    last_reviewed_at: Optional[datetime] = Field(
        default=None,
        description="UTC time of the last review (None if never reviewed).",
    )

    @field_validator("due_at", "last_reviewed_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def fresh(
        cls, card_id: str, ease_factor: float = DEFAULT_EASE_FACTOR
    ) -> "ReviewState":
        """Zero state for a card that has never been reviewed."""
        return cls(card_id=card_id, ease_factor=ease_factor)

    @property
    def is_new(self) -> bool:
        return self.last_reviewed_at is None

    def is_due(self, now: datetime) -> bool:
        if self.is_new or self.due_at is None:
            return True
        return self.due_at <= ensure_utc(now)

    def check_invariants(self) -> None:
        """
        Raise InvalidStateError if this state could not have been produced
        by the scheduler.
        """
        if self.ease_factor < MINIMUM_EASE_FACTOR:
            raise InvalidStateError(
                f"Ease factor {self.ease_factor} for card '{self.card_id}' "
                f"is below the minimum of {MINIMUM_EASE_FACTOR}.",
                card_id=self.card_id,
            )
        if self.last_reviewed_at is not None:
            if self.due_at is None:
                raise InvalidStateError(
                    f"Card '{self.card_id}' has a last review but no due date.",
                    card_id=self.card_id,
                )
            if self.due_at < self.last_reviewed_at:
                raise InvalidStateError(
                    f"Card '{self.card_id}' is due ({self.due_at.isoformat()}) "
                    "before it was last reviewed "
                    f"({self.last_reviewed_at.isoformat()}).",
                    card_id=self.card_id,
                )


class ReviewLogEntry(BaseModel):
    """
    A single applied review, kept as history next to the current state.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    review_id: Optional[int] = Field(
        default=None,
        description="Auto-incrementing PK from review_log (None if new).",
    )
    card_id: str = Field(..., min_length=1)
    user_id: str = Field(default=DEFAULT_USER_ID, min_length=1)
    outcome: ReviewOutcome
    reviewed_at: datetime
    ease_before: float
    ease_after: float
    interval_days: int = Field(..., ge=0)
    repetitions: int = Field(..., ge=0)
    due_at: datetime

    @field_validator("reviewed_at", "due_at")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_transition(
        cls,
        before: ReviewState,
        after: ReviewState,
        outcome: ReviewOutcome,
        user_id: str = DEFAULT_USER_ID,
    ) -> "ReviewLogEntry":
        """Build a log entry from the state before and after one review."""
        if after.last_reviewed_at is None or after.due_at is None:
            raise ValueError(
                f"State for card '{after.card_id}' has not been reviewed."
            )
        return cls(
            card_id=after.card_id,
            user_id=user_id,
            outcome=outcome,
            reviewed_at=after.last_reviewed_at,
            ease_before=before.ease_factor,
            ease_after=after.ease_factor,
            interval_days=after.interval_days,
            repetitions=after.repetitions,
            due_at=after.due_at,
        )


class Session(BaseModel):
    """
    A bounded, ordered set of card ids selected for review "now".
    Ephemeral: never persisted.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    session_uuid: UUID = Field(default_factory=uuid.uuid4)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    limit: int = Field(..., ge=0)
    card_ids: List[str] = Field(default_factory=list)
    reviewed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_bounded(self) -> "Session":
        if len(self.card_ids) > self.limit:
            raise ValueError(
                f"Session holds {len(self.card_ids)} cards "
                f"but its limit is {self.limit}."
            )
        return self

    @property
    def remaining(self) -> List[str]:
        done = set(self.reviewed) | set(self.skipped)
        return [card_id for card_id in self.card_ids if card_id not in done]

    @property
    def is_complete(self) -> bool:
        return not self.remaining

    def mark_reviewed(self, card_id: str) -> None:
        if card_id not in self.card_ids:
            raise ValueError(f"Card '{card_id}' is not part of this session.")
        if card_id not in self.reviewed:
            self.reviewed = [*self.reviewed, card_id]

    def mark_skipped(self, card_id: str) -> None:
        """Drop a card from the rest of the session without reviewing it."""
        if card_id not in self.card_ids:
            raise ValueError(f"Card '{card_id}' is not part of this session.")
        if card_id not in self.skipped:
            self.skipped = [*self.skipped, card_id]
