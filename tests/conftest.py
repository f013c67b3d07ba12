import json
import sys
import pytest
from pathlib import Path
from typing import Generator, List
from datetime import datetime, timezone

from flashreview.corpus import CardStore
from flashreview.db import ReviewStateDatabase
from flashreview.models import Card, CodeBlock, ListBlock, TableBlock, TextBlock
from flashreview.store import InMemoryReviewStateStore


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request):
    """
    Temporarily change the working directory to the test's tmpdir so that
    stray .env files or database files never leak between tests.
    """
    tmpdir = request.getfixturevalue("tmpdir")
    sys.path.insert(0, str(tmpdir))
    with tmpdir.as_cwd():
        yield


@pytest.fixture
def utc_now() -> datetime:
    return datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_reviews.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[ReviewStateDatabase, None, None]:
    """
    Provide a ReviewStateDatabase, either in-memory or file-backed, and
    close it on teardown.
    """
    if request.param == "memory":
        db_man = ReviewStateDatabase(db_path_memory)
    else:
        db_man = ReviewStateDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                import logging

                logging.warning(
                    f"Error removing temporary DB file in test fixture teardown: {e}"
                )


@pytest.fixture
def initialized_db_manager(db_manager: ReviewStateDatabase) -> ReviewStateDatabase:
    db_manager.initialize_schema()
    return db_manager


# --- Card Fixtures ---
@pytest.fixture
def sample_cards() -> List[Card]:
    """Three cards covering every answer block variant and card kind."""
    return [
        Card(
            id="card-1",
            question="What is the difference between == and Equals in C#?",
            answer=[
                TextBlock(content="== compares references for classes."),
                CodeBlock(code='a.Equals(b);', code_type="good"),
            ],
            topic="Equality",
            category="notes",
            source="notes/Equality.md",
        ),
        Card(
            id="card-2",
            question="Value types vs reference types",
            answer=[
                ListBlock(items=["Stored inline", "Copied on assignment"]),
                TableBlock(
                    headers=["Kind", "Example"],
                    rows=[["Value", "int"], ["Reference", "string"]],
                ),
            ],
            topic="Types",
            category="notes",
            is_concept=True,
        ),
        Card(
            id="card-3",
            question="Generics",
            answer=[TextBlock(content="List<T> is a generic type.")],
            topic="Types",
            category="practice",
            is_section=True,
        ),
    ]


@pytest.fixture
def card_store(sample_cards: List[Card]) -> CardStore:
    return CardStore(sample_cards)


@pytest.fixture
def memory_store() -> InMemoryReviewStateStore:
    return InMemoryReviewStateStore()


# --- Corpus File Fixtures ---
@pytest.fixture
def raw_records() -> list:
    """Records shaped the way the corpus generator writes them."""
    return [
        {
            "id": "card-1",
            "question": "What does the using statement do?",
            "answer": [
                {"type": "text", "content": "Disposes the resource."},
                {
                    "type": "code",
                    "language": "csharp",
                    "code": "using var f = File.OpenRead(path);",
                    "codeType": "good",
                },
            ],
            "category": "notes",
            "topic": "Resources",
            "source": "notes/Resources.md",
            "isSection": False,
            "isConcept": False,
        },
        {
            "id": "card-2",
            "question": "Async pitfalls",
            "answer": [
                {"type": "list", "items": ["async void", "blocking on .Result"]}
            ],
            "category": "practice",
            "topic": "Async",
            "source": "practice/Async.md",
            "isSection": True,
            "isConcept": False,
        },
    ]


@pytest.fixture
def js_corpus_file(tmp_path: Path, raw_records: list) -> Path:
    path = tmp_path / "flash-card-data.js"
    path.write_text(
        f"window.FLASH_CARD_DATA = {json.dumps(raw_records, indent=2)};\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def json_corpus_file(tmp_path: Path, raw_records: list) -> Path:
    path = tmp_path / "cards.json"
    path.write_text(json.dumps(raw_records), encoding="utf-8")
    return path
