"""
The card store: an immutable, ordered card corpus plus the loader that
builds it from the generated data file, JSON or YAML.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .corpus_models import (
    GENERATED_ID_TEMPLATE,
    JS_ASSIGNMENT_PATTERN,
    SUPPORTED_SUFFIXES,
    CorpusLoadError,
    CorpusLoaderConfig,
    _RawCardRecord,
)
from .exceptions import CardNotFoundError, CorpusError
from .models import Card

logger = logging.getLogger(__name__)


class CardStore:
    """
    Read-only, ordered collection of cards.

    Passed explicitly to whatever needs the corpus; there is no global
    instance.
    """

    def __init__(self, cards: Iterable[Card]):
        self._cards: Tuple[Card, ...] = tuple(cards)
        self._index: Dict[str, Card] = {}
        for card in self._cards:
            if card.id in self._index:
                raise CorpusError(f"Duplicate card id '{card.id}'.")
            self._index[card.id] = card

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._index

    def __repr__(self) -> str:
        return f"CardStore({len(self)} cards)"

    @property
    def cards(self) -> Tuple[Card, ...]:
        return self._cards

    def get(self, card_id: str) -> Card:
        try:
            return self._index[card_id]
        except KeyError:
            raise CardNotFoundError(card_id) from None

    def ids(self) -> List[str]:
        return [card.id for card in self._cards]

    def topics(self) -> List[str]:
        """Distinct topics in first-seen order."""
        return list(dict.fromkeys(card.topic for card in self._cards))

    def filter(
        self,
        topic: Optional[str] = None,
        category: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> "CardStore":
        """Return a new store holding only the matching cards, in order."""
        return CardStore(
            card
            for card in self._cards
            if (topic is None or card.topic == topic)
            and (category is None or card.category == category)
            and (kind is None or card.kind == kind)
        )


def extract_cards_from_script(script_text: str) -> Any:
    """
    Pull the array literal out of a generated ``flash-card-data.js``.

    The generator writes ``window.FLASH_CARD_DATA = <JSON>;`` so the payload
    is decoded as JSON; no JavaScript is evaluated.

    Raises:
        ValueError: if the assignment is missing or the payload is not JSON.
    """
    match = JS_ASSIGNMENT_PATTERN.search(script_text)
    if match is None:
        raise ValueError("No 'window.FLASH_CARD_DATA = ...' assignment found.")
    payload, _ = json.JSONDecoder().raw_decode(script_text, match.end())
    return payload


class CorpusLoader:
    def __init__(self, config: CorpusLoaderConfig):
        self.config = config
        self._generated_ids = 0

    def _read_payload(self, file_path: Path) -> Any:
        try:
            content = file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CorpusLoadError(file_path, "File not found.") from None
        except IOError as e:
            raise CorpusLoadError(file_path, f"Could not read file: {e}") from e

        suffix = file_path.suffix.lower()
        try:
            if suffix == ".js":
                return extract_cards_from_script(content)
            if suffix in (".yaml", ".yml"):
                return yaml.safe_load(content)
            return json.loads(content)
        except yaml.YAMLError as e:
            raise CorpusLoadError(
                file_path, f"Invalid YAML syntax: {e}"
            ) from e
        except ValueError as e:
            raise CorpusLoadError(file_path, f"Invalid card data: {e}") from e

    def _records_from_payload(
        self, payload: Any, file_path: Path
    ) -> List[Any]:
        if isinstance(payload, dict) and "cards" in payload:
            payload = payload["cards"]
        if not isinstance(payload, list):
            raise CorpusLoadError(
                file_path,
                "Top level must be a list of cards "
                "(or an object with a 'cards' list).",
            )
        return payload

    def _prepare_card_data(self, raw: _RawCardRecord) -> Dict[str, Any]:
        """Map a validated raw record onto Card fields, filling the id and
        topic defaults the generator would have used."""
        card_id = raw.id
        if not card_id:
            card_id = GENERATED_ID_TEMPLATE.format(
                index=self._generated_ids + 1
            )
        return {
            "id": card_id,
            "question": raw.question.strip(),
            "answer": raw.answer,
            "topic": raw.topic or self.config.default_topic,
            "category": raw.category,
            "source": raw.source,
            "is_section": raw.isSection,
            "is_concept": raw.isConcept,
        }

    def _process_single_record(
        self, record: Any, idx: int, file_path: Path
    ) -> "Card | CorpusLoadError":
        if not isinstance(record, dict):
            self._generated_ids += 1
            return CorpusLoadError(
                file_path=file_path,
                message=f"Record at index {idx} is not an object.",
                record_index=idx,
            )
        try:
            raw = _RawCardRecord.model_validate(record)
            card = Card(**self._prepare_card_data(raw))
        except ValidationError as e:
            error_details = e.errors()[0]
            field = ".".join(map(str, error_details["loc"]))
            return CorpusLoadError(
                file_path=file_path,
                message=f"Validation error in field '{field}': "
                f"{error_details['msg']}",
                record_index=idx,
                question_snippet=str(record.get("question", ""))[:50],
                card_id=record.get("id"),
            )
        finally:
            self._generated_ids += 1
        return card

    def process_file(
        self, file_path: Path
    ) -> Tuple[List[Card], List[CorpusLoadError]]:
        """
        Parse one corpus file into cards, collecting per-record errors.

        Raises:
            CorpusLoadError: if the file cannot be read or decoded at all.
        """
        payload = self._read_payload(file_path)
        records = self._records_from_payload(payload, file_path)

        cards: List[Card] = []
        errors: List[CorpusLoadError] = []
        for idx, record in enumerate(records):
            result = self._process_single_record(record, idx, file_path)
            if isinstance(result, Card):
                cards.append(result)
            else:
                errors.append(result)
                if self.config.fail_fast:
                    raise result
        return cards, errors


def _discover_files(source: Path) -> List[Path]:
    if source.is_dir():
        return sorted(
            path
            for path in source.rglob("*")
            if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES
        )
    return [source]


def _drop_duplicate_ids(
    cards: List[Card], file_path_for: Dict[str, Path]
) -> Tuple[List[Card], List[CorpusLoadError]]:
    seen: Dict[str, Card] = {}
    unique: List[Card] = []
    errors: List[CorpusLoadError] = []
    for card in cards:
        if card.id in seen:
            errors.append(
                CorpusLoadError(
                    file_path=file_path_for[card.id],
                    message="Duplicate card id; keeping the first occurrence.",
                    question_snippet=card.question[:50],
                    card_id=card.id,
                )
            )
            continue
        seen[card.id] = card
        unique.append(card)
    return unique, errors


def load_cards(
    config: CorpusLoaderConfig,
) -> Tuple[List[Card], List[CorpusLoadError]]:
    """
    Load every card under ``config.source`` (a file or a directory).

    Returns:
        Tuple[List[Card], List[CorpusLoadError]]: Cards in corpus order and
        the errors met along the way. With ``fail_fast`` the first error is
        raised instead.
    """
    if not config.source.exists():
        error = CorpusLoadError(
            file_path=config.source,
            message=f"Corpus source does not exist: {config.source}",
        )
        if config.fail_fast:
            raise error
        return [], [error]

    loader = CorpusLoader(config)
    files = _discover_files(config.source)
    logger.info("Found %s corpus files in %s", len(files), config.source)

    all_cards: List[Card] = []
    all_errors: List[CorpusLoadError] = []
    file_path_for: Dict[str, Path] = {}
    for file_path in files:
        try:
            cards, errors = loader.process_file(file_path)
        except CorpusLoadError as e:
            if config.fail_fast:
                raise
            all_errors.append(e)
            continue
        for card in cards:
            file_path_for.setdefault(card.id, file_path)
        all_cards.extend(cards)
        all_errors.extend(errors)

    unique_cards, duplicate_errors = _drop_duplicate_ids(
        all_cards, file_path_for
    )
    if duplicate_errors and config.fail_fast:
        raise duplicate_errors[0]
    all_errors.extend(duplicate_errors)

    logger.info(
        "Loaded %s cards from %s files with %s errors.",
        len(unique_cards),
        len(files),
        len(all_errors),
    )
    return unique_cards, all_errors


def load_card_store(
    source: Path, fail_fast: bool = False
) -> Tuple[CardStore, List[CorpusLoadError]]:
    """Convenience wrapper returning a CardStore instead of a list."""
    cards, errors = load_cards(
        CorpusLoaderConfig(source=Path(source), fail_fast=fail_fast)
    )
    return CardStore(cards), errors
