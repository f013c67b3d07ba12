"""
Defines the raw record models, dataclasses and constants for corpus loading.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field

# --- Configuration Constants ---
SUPPORTED_SUFFIXES = (".json", ".js", ".yaml", ".yml")

# The generated data file assigns the corpus to a browser global.
JS_ASSIGNMENT_PATTERN = re.compile(
    r"window\s*\.\s*FLASH_CARD_DATA\s*=\s*", re.MULTILINE
)

# Id scheme used by the corpus generator for records without an id.
GENERATED_ID_TEMPLATE = "card-{index}"


# --- Internal Pydantic Model for Raw Record Validation ---


class _RawCardRecord(PydanticBaseModel):
    """Loose shape of one corpus record before it becomes a Card.

    Unknown keys written by the generator are ignored.
    """

    id: Optional[str] = Field(default=None)
    question: str = Field(..., min_length=1)
    answer: List[Dict[str, Any]] = Field(default_factory=list)
    topic: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)
    source: Optional[str] = Field(default=None)
    isSection: bool = Field(default=False)
    isConcept: bool = Field(default=False)

    model_config = ConfigDict(extra="ignore")


# --- Custom Error Reporting Dataclass ---
@dataclass
class CorpusLoadError(Exception):
    file_path: Path
    message: str
    record_index: Optional[int] = None
    question_snippet: Optional[str] = None
    card_id: Optional[str] = None

    def __str__(self) -> str:
        context_parts = [f"File: {self.file_path.name}"]
        if self.record_index is not None:
            context_parts.append(f"Record: {self.record_index}")
        if self.card_id:
            context_parts.append(f"Id: '{self.card_id}'")
        if self.question_snippet:
            snippet = (
                (self.question_snippet[:47] + "...")
                if len(self.question_snippet) > 50
                else self.question_snippet
            )
            context_parts.append(f"Q: '{snippet}'")
        return f"{' | '.join(context_parts)} | Error: {self.message}"


@dataclass
class CorpusLoaderConfig:
    """Configuration for loading a card corpus."""

    source: Path
    fail_fast: bool = False
    default_topic: str = "General"
