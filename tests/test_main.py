"""
Tests for the command-line entry point.
"""

import datetime
import json
import os
from unittest.mock import MagicMock, patch

import pytest

from config import settings
from leetstack import main as cli


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep tests from configuring file logging."""
    with patch("leetstack.main.setup_logging") as mock_setup:
        yield mock_setup


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "reviews.db")


@pytest.fixture
def notes_file(tmp_path):
    path = tmp_path / "notes.md"
    path.write_text("# A\nfoo\n## B\nbar", encoding="utf-8")
    return str(path)


def run(argv, capsys):
    code = cli.main(argv)
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_chunk_by_headings(notes_file, capsys):
    code, out, _ = run(["chunk", notes_file, "--headings"], capsys)

    assert code == 0
    groups = json.loads(out)["groups"]
    assert len(groups) == 1
    assert [chunk["title"] for chunk in groups[0]] == ["A", "B"]
    assert groups[0][1]["start_index"] == 8


def test_chunk_by_blocks_with_anchor(tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("First line here.\nSecond line here.\nThird line here.", encoding="utf-8")

    code, out, _ = run(
        ["chunk", str(path), "--overlap", "0", "--anchor-front", "second LINE"], capsys
    )

    assert code == 0
    assert json.loads(out) == {"chunks": ["Third line here."]}


def test_chunk_missing_file(tmp_path, capsys):
    code, _, err = run(["chunk", str(tmp_path / "missing.md")], capsys)

    assert code == 1
    assert "Error:" in err


def test_review_due_and_reset(db_path, capsys):
    """Test the review cycle through the command line."""
    code, out, _ = run(
        ["--db", db_path, "--scheduler", "stage", "review", "two-sum", "easy",
         "--now", "2025-01-01T12:00:00Z"],
        capsys,
    )
    assert code == 0
    state = json.loads(out)
    assert state["card_id"] == "two-sum"
    assert state["repetitions"] == 1
    assert state["interval"] == settings.SR_LEARNING_STEPS[1]
    assert state["last_review_status"] == "easy"
    assert state["last_reviewed_at"] == "2025-01-01T12:00:00+00:00"

    code, out, _ = run(["--db", db_path, "due", "--now", "2025-01-01T12:00:00"], capsys)
    assert code == 0
    assert json.loads(out) == []

    code, out, _ = run(["--db", db_path, "due", "--now", "2030-01-01T00:00:00Z"], capsys)
    assert [item["card_id"] for item in json.loads(out)] == ["two-sum"]

    code, out, _ = run(
        ["--db", db_path, "--scheduler", "stage", "reset", "two-sum",
         "--now", "2025-01-02T00:00:00Z"],
        capsys,
    )
    assert code == 0
    reset_state = json.loads(out)
    assert reset_state["repetitions"] == 0
    assert reset_state["last_reviewed_at"] is None


def test_review_with_sm2_scheduler(db_path, capsys):
    code, out, _ = run(
        ["--db", db_path, "--scheduler", "sm2", "review", "heap", "good",
         "--now", "2025-01-01T12:00:00Z"],
        capsys,
    )

    assert code == 0
    state = json.loads(out)
    assert state["interval"] == 86400
    assert state["last_review_status"] == "medium"


def test_unknown_difficulty(db_path, capsys):
    code, _, err = run(["--db", db_path, "review", "two-sum", "perfect"], capsys)

    assert code == 1
    assert "Unknown difficulty rating" in err


def test_reset_unknown_card(db_path, capsys):
    code, _, err = run(["--db", db_path, "reset", "ghost"], capsys)

    assert code == 1
    assert "ghost" in err


def test_unknown_scheduler_is_rejected(db_path):
    with pytest.raises(SystemExit):
        cli.main(["--db", db_path, "--scheduler", "fsrs", "due"])


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_timestamp_arg_defaults_to_utc():
    assert cli._timestamp_arg("2025-01-01T12:00:00") == datetime.datetime(
        2025, 1, 1, 12, 0, tzinfo=datetime.timezone.utc
    )


def test_build_scheduler_config_uses_settings():
    config = cli.build_scheduler_config()

    assert list(config.steps_seconds) == list(settings.SR_LEARNING_STEPS)
    assert config.min_ease_factor == settings.SR_MIN_EASE


def test_database_file_is_created(db_path, capsys):
    run(["--db", db_path, "due"], capsys)
    assert os.path.exists(db_path)


def test_build_note_stack_service_uses_settings():
    generator = MagicMock()
    service = cli.build_note_stack_service(generator)

    assert service.generator is generator
    assert service.options.target_size == settings.CHUNK_TARGET_SIZE
    assert service.options.overlap_blocks == settings.CHUNK_OVERLAP_BLOCKS
    assert service.max_iterations == settings.STACK_MAX_ITERATIONS
    assert service.max_tokens == settings.CHUNK_MAX_TOKENS


def test_stats_and_history(db_path, capsys):
    for now, card_id in [
        ("2024-12-31T09:00:00Z", "two-sum"),
        ("2025-01-01T08:00:00Z", "two-sum"),
        ("2025-01-01T09:00:00Z", "heap"),
    ]:
        code, _, _ = run(["--db", db_path, "review", card_id, "easy", "--now", now], capsys)
        assert code == 0

    code, out, _ = run(["--db", db_path, "stats", "--now", "2025-01-01T12:00:00Z"], capsys)
    assert code == 0
    stats = json.loads(out)
    assert stats["total_cards"] == 2
    assert stats["total_reviews"] == 3
    assert stats["streak"] == 2
    assert stats["last_review_date"] == "2025-01-01T09:00:00+00:00"

    code, out, _ = run(["--db", db_path, "history", "--card", "two-sum"], capsys)
    assert code == 0
    assert [item["reviewed_at"] for item in json.loads(out)] == [
        "2024-12-31T09:00:00+00:00",
        "2025-01-01T08:00:00+00:00",
    ]

    code, out, _ = run(["--db", db_path, "history", "--limit", "1"], capsys)
    assert [item["card_id"] for item in json.loads(out)] == ["heap"]


def test_stats_on_empty_database(db_path, capsys):
    code, out, _ = run(["--db", db_path, "stats"], capsys)

    assert code == 0
    stats = json.loads(out)
    assert stats["total_reviews"] == 0
    assert stats["streak"] == 0
    assert stats["last_review_date"] is None
