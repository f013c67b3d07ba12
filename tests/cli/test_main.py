# Standard library imports
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

# Third-party imports
import pytest
from typer.testing import CliRunner

# Local application imports
from flashreview import config as flashreview_config
from flashreview.cli.main import app
from flashreview.db.database import ReviewStateDatabase
from flashreview.models import ReviewOutcome, ReviewState


runner = CliRunner()

NOW = "2024-01-01T00:00:00Z"


def strip_ansi(text: str) -> str:
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def normalize_output(text: str) -> str:
    """Strip ANSI codes and table borders, then collapse whitespace so rich
    wrapping does not matter."""
    text = strip_ansi(text)
    text = re.sub(r"[─-╿]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


@pytest.fixture
def corpus_file(tmp_path: Path) -> Path:
    path = tmp_path / "cards.json"
    path.write_text(
        json.dumps(
            [
                {"id": "card-1", "question": "Q1", "topic": "Async"},
                {"id": "card-2", "question": "Q2", "topic": "Async"},
                {"id": "card-3", "question": "Q3", "topic": "LINQ"},
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def db_file(tmp_path: Path) -> Path:
    return tmp_path / "reviews.db"


@pytest.fixture
def cli_args(corpus_file: Path, db_file: Path):
    return ["--db", str(db_file), "--cards", str(corpus_file)]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep any FLASHREVIEW_* values of the developer's shell out of the tests."""
    monkeypatch.setattr(flashreview_config.settings, "db", None)
    monkeypatch.setattr(flashreview_config.settings, "cards", None)
    monkeypatch.setattr(flashreview_config.settings, "user", "default")
    monkeypatch.setattr(flashreview_config.settings, "session_limit", 20)
    for var in ("FLASHREVIEW_DB", "FLASHREVIEW_CARDS", "FLASHREVIEW_USER"):
        monkeypatch.delenv(var, raising=False)


def _ids(output: str):
    return [line for line in output.splitlines() if line.strip()]


class TestReviewCommand:
    def test_prints_due_ids_one_per_line(self, cli_args):
        result = runner.invoke(app, ["review", "--limit", "2", "--now", NOW, *cli_args])
        assert result.exit_code == 0, result.output
        assert _ids(result.stdout) == ["card-1", "card-2"]

    def test_limit_defaults_to_settings(self, cli_args, monkeypatch):
        monkeypatch.setattr(flashreview_config.settings, "session_limit", 1)
        result = runner.invoke(app, ["review", "--now", NOW, *cli_args])
        assert _ids(result.stdout) == ["card-1"]

    def test_zero_limit_prints_nothing(self, cli_args):
        result = runner.invoke(app, ["review", "--limit", "0", "--now", NOW, *cli_args])
        assert result.exit_code == 0
        assert result.stdout.strip() == ""

    def test_topic_filter(self, cli_args):
        result = runner.invoke(
            app, ["review", "--topic", "LINQ", "--now", NOW, *cli_args]
        )
        assert _ids(result.stdout) == ["card-3"]

    def test_paths_fall_back_to_environment(self, corpus_file, db_file):
        result = runner.invoke(
            app,
            ["review", "--now", NOW],
            env={"FLASHREVIEW_DB": str(db_file), "FLASHREVIEW_CARDS": str(corpus_file)},
        )
        assert result.exit_code == 0, result.output
        assert _ids(result.stdout) == ["card-1", "card-2", "card-3"]

    def test_missing_db_exits_with_error(self, corpus_file):
        result = runner.invoke(app, ["review", "--cards", str(corpus_file)])
        assert result.exit_code == 1
        assert "--db is required" in normalize_output(result.stdout)

    def test_missing_cards_exits_with_error(self, db_file):
        result = runner.invoke(app, ["review", "--db", str(db_file)])
        assert result.exit_code == 1
        assert "--cards is required" in normalize_output(result.stdout)

    def test_empty_corpus_exits_with_error(self, tmp_path, db_file):
        empty = tmp_path / "empty.json"
        empty.write_text("[]", encoding="utf-8")
        result = runner.invoke(
            app, ["review", "--db", str(db_file), "--cards", str(empty)]
        )
        assert result.exit_code == 1
        assert "no cards could be loaded" in normalize_output(result.stdout)

    def test_bad_now_is_a_usage_error(self, cli_args):
        result = runner.invoke(app, ["review", "--now", "yesterday", *cli_args])
        assert result.exit_code == 2
        assert "ISO 8601" in normalize_output(result.output)


class TestSubmitCommand:
    def test_submit_schedules_card(self, cli_args, db_file):
        result = runner.invoke(app, ["submit", "card-1", "good", "--now", NOW, *cli_args])
        assert result.exit_code == 0, result.output
        assert "next due in 1 days" in normalize_output(result.stdout)

        with ReviewStateDatabase(db_file) as db:
            state = db.get("card-1")
            log = db.review_log("card-1")
        assert state.repetitions == 1
        assert state.due_at == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert log[0].outcome is ReviewOutcome.Good

    def test_submitted_card_leaves_queue_until_due(self, cli_args):
        runner.invoke(app, ["submit", "card-1", "3", "--now", NOW, *cli_args])

        same_day = runner.invoke(app, ["review", "--now", NOW, *cli_args])
        assert _ids(same_day.stdout) == ["card-2", "card-3"]

        next_day = runner.invoke(
            app, ["review", "--now", "2024-01-02T00:00:00+00:00", *cli_args]
        )
        assert _ids(next_day.stdout) == ["card-2", "card-3", "card-1"]

    def test_invalid_outcome(self, cli_args):
        result = runner.invoke(app, ["submit", "card-1", "perfect", *cli_args])
        assert result.exit_code == 1
        assert "Invalid outcome" in normalize_output(result.stdout)

    def test_unknown_card(self, cli_args):
        result = runner.invoke(app, ["submit", "card-99", "good", *cli_args])
        assert result.exit_code == 1
        assert "Card 'card-99' not found" in normalize_output(result.stdout)

    def test_corrupted_state_suggests_reset(self, cli_args, db_file):
        with ReviewStateDatabase(db_file) as db:
            db.save({"card-2": ReviewState(card_id="card-2", ease_factor=1.0)})

        result = runner.invoke(app, ["submit", "card-2", "good", *cli_args])
        assert result.exit_code == 1
        output = normalize_output(result.stdout)
        assert "Corrupted review state" in output
        assert "flashreview reset card-2" in output

    def test_users_are_isolated(self, cli_args):
        runner.invoke(
            app, ["submit", "card-1", "good", "--now", NOW, "--user", "alice", *cli_args]
        )
        alice = runner.invoke(app, ["review", "--now", NOW, "--user", "alice", *cli_args])
        bob = runner.invoke(app, ["review", "--now", NOW, "--user", "bob", *cli_args])
        assert "card-1" not in _ids(alice.stdout)
        assert "card-1" in _ids(bob.stdout)

    def test_database_error_exits_non_zero(self, cli_args):
        from flashreview.exceptions import ReviewStateOperationError

        with patch(
            "flashreview.cli.main.ReviewProcessor.process_review",
            side_effect=ReviewStateOperationError("disk full"),
        ):
            result = runner.invoke(app, ["submit", "card-1", "good", *cli_args])
        assert result.exit_code == 1
        assert "Database Error: disk full" in normalize_output(result.stdout)


class TestResetAndRestore:
    def test_reset_makes_card_due_again(self, cli_args, db_file):
        runner.invoke(app, ["submit", "card-1", "easy", "--now", NOW, *cli_args])
        result = runner.invoke(app, ["reset", "card-1", "--yes", *cli_args])
        assert result.exit_code == 0, result.output

        with ReviewStateDatabase(db_file) as db:
            state = db.get("card-1")
        assert state.is_new
        assert state.ease_factor == 2.5

        review = runner.invoke(app, ["review", "--now", NOW, *cli_args])
        assert "card-1" in _ids(review.stdout)

    def test_reset_can_be_cancelled(self, cli_args, db_file):
        runner.invoke(app, ["submit", "card-1", "easy", "--now", NOW, *cli_args])
        result = runner.invoke(app, ["reset", "card-1", *cli_args], input="n\n")
        assert "Reset cancelled" in result.output
        with ReviewStateDatabase(db_file) as db:
            assert db.get("card-1").repetitions == 1

    def test_reset_unknown_card(self, cli_args):
        result = runner.invoke(app, ["reset", "nope", "--yes", *cli_args])
        assert result.exit_code == 1

    def test_restore_without_backups(self, db_file):
        result = runner.invoke(app, ["restore", "--db", str(db_file), "--yes"])
        assert result.exit_code == 1
        assert "No backup files found" in normalize_output(result.stdout)

    def test_restore_latest_backup(self, cli_args, db_file):
        runner.invoke(app, ["submit", "card-1", "good", "--now", NOW, *cli_args])
        # reset backs the database up before writing
        runner.invoke(app, ["reset", "card-1", "--yes", *cli_args])

        result = runner.invoke(app, ["restore", "--db", str(db_file), "--yes"])
        assert result.exit_code == 0, result.output
        assert "successfully restored" in normalize_output(result.stdout)

        with ReviewStateDatabase(db_file) as db:
            assert db.get("card-1").repetitions == 1


class TestStatsCommand:
    def test_stats_tables(self, cli_args):
        runner.invoke(app, ["submit", "card-1", "good", "--now", NOW, *cli_args])
        runner.invoke(app, ["submit", "card-2", "again", "--now", NOW, *cli_args])

        result = runner.invoke(
            app, ["stats", "--now", "2024-01-01T12:00:00Z", *cli_args]
        )
        assert result.exit_code == 0, result.output
        output = normalize_output(result.stdout)
        assert "Review Overview" in output
        assert "Total Cards 3" in output
        assert "Reviewed Cards 2" in output
        assert "Due Now 1" in output
        assert "Total Reviews 2" in output
        assert "Outcomes" in output
        assert "Async" in output and "LINQ" in output
