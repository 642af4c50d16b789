"""
Unit tests for CLI commands.

Tests the analyze and progress commands against JSON record files.
"""
import json
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from gutmap.cli import load_records, main, parse_now, progress
from gutmap.models.milestone_state import MilestoneStateRecord
from tests.factories import BASE_TIME, daily_records


@pytest.fixture
def records_file(tmp_path):
    path = tmp_path / "records.json"
    payload = [r.model_dump(mode="json") for r in daily_records(3)]
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


# =============================================================================
# Record loading
# =============================================================================


class TestLoadRecords:
    """Tests for reading record files."""

    def test_list_file(self, records_file):
        assert len(load_records(str(records_file))) == 3

    def test_object_with_records_key(self, tmp_path, records_file):
        path = tmp_path / "wrapped.json"
        path.write_text(json.dumps({"records": json.loads(records_file.read_text())}))

        assert len(load_records(str(path))) == 3

    def test_missing_file_exits(self, tmp_path):
        with patch("builtins.print") as mock_print, pytest.raises(SystemExit) as exc_info:
            load_records(str(tmp_path / "missing.json"))

        assert exc_info.value.code == 1
        assert "Could not read records" in str(mock_print.call_args)

    def test_invalid_record_exits(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([{"id": "x"}]))

        with patch("builtins.print") as mock_print, pytest.raises(SystemExit) as exc_info:
            load_records(str(path))

        assert exc_info.value.code == 1
        assert "Invalid meal record" in str(mock_print.call_args)

    def test_bad_now_exits(self):
        with patch("builtins.print"), pytest.raises(SystemExit) as exc_info:
            parse_now("yesterday")

        assert exc_info.value.code == 1


# =============================================================================
# main() Tests
# =============================================================================


class TestMain:
    """Tests for the main CLI entry point."""

    def test_analyze(self, records_file, capsys):
        with patch("sys.argv", ["gutmap", "analyze", str(records_file), "--now", BASE_TIME.isoformat()]):
            main()

        output = json.loads(capsys.readouterr().out)
        assert output["total_meals"] == 3
        assert output["rated_meals"] == 3

    def test_progress_without_persist(self, records_file, capsys):
        with patch("sys.argv", ["gutmap", "progress", str(records_file), "--now", BASE_TIME.isoformat()]):
            main()

        output = json.loads(capsys.readouterr().out)
        assert output["current_tier"] == 3
        assert "experiments_unlocked" in [e["milestone_id"] for e in output["events"]]
        assert output["next_milestone"]["id"] == "first_experiment"
        assert [t["tab"] for t in output["tabs"]] == ["analysis", "experiments", "ai_guide", "blueprint"]

    def test_no_command_shows_help(self):
        with patch("sys.argv", ["gutmap"]), pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_unknown_command(self):
        with patch("sys.argv", ["gutmap", "unknown-command"]), pytest.raises(SystemExit) as exc_info:
            main()

        # argparse returns exit code 2 for invalid arguments
        assert exc_info.value.code == 2


class TestPersistedProgress:
    """Tests for --persist."""

    def test_state_saved_and_events_not_repeated(self, db: Session, records_file, capsys):
        with patch("gutmap.cli.SessionLocal", return_value=db), patch("gutmap.cli.init_db"):
            progress(str(records_file), BASE_TIME.isoformat(), user_id="cli-user", persist=True)
            first = json.loads(capsys.readouterr().out)

            progress(str(records_file), BASE_TIME.isoformat(), user_id="cli-user", persist=True)
            second = json.loads(capsys.readouterr().out)

        assert first["events"]
        assert second["events"] == []
        row = db.get(MilestoneStateRecord, "cli-user")
        assert row.current_tier == 3
