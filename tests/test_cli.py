"""
Tests for the command-line interface.
"""

import json

from typer.testing import CliRunner

from bookable import __version__
from bookable.cli.app import app

runner = CliRunner()

# Open every day so the result does not depend on the weekday
DATA = {
    "providers": [{"id": "alice", "timezone": "UTC"}],
    "availability": [
        {"provider_id": "alice", "day_of_week": day, "start_time": "09:00", "end_time": "12:00"}
        for day in range(7)
    ],
    "pools": [{"id": "support", "pool_type": "priority"}],
    "pool_members": [{"pool_id": "support", "provider_id": "alice"}],
}


def _data_file(tmp_path):
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps(DATA), encoding="utf-8")
    return str(path)


class TestCli:
    """Smoke tests for the Typer commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_slots_json(self, tmp_path):
        result = runner.invoke(
            app, ["slots", "alice", "2099-06-01", "--duration", "60", "--data", _data_file(tmp_path), "--json"]
        )

        assert result.exit_code == 0
        slots = json.loads(result.output)["slots"]
        assert [slot["available"] for slot in slots] == [True, True, True]

    def test_select_member(self, tmp_path):
        result = runner.invoke(
            app,
            ["select-member", "support", "2099-06-01T09:00:00Z", "2099-06-01T10:00:00Z",
             "--data", _data_file(tmp_path), "--json"],
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {"provider_id": "alice"}

    def test_unknown_provider_exits_with_error(self, tmp_path):
        result = runner.invoke(app, ["slots", "nobody", "2099-06-01", "--data", _data_file(tmp_path)])

        assert result.exit_code == 1
        assert "Error" in result.output
