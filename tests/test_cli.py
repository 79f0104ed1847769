"""Tests for the command line interface."""

from typer.testing import CliRunner

from sleeptracker import __version__
from sleeptracker.cli import app

runner = CliRunner()


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status_empty(self, default_db):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "No night in progress" in result.output
        assert "Recorded nights: 0" in result.output

    def test_start_stop_rate(self, default_db):
        result = runner.invoke(app, ["start"])
        assert result.exit_code == 0
        assert "Started night 1" in result.output

        result = runner.invoke(app, ["status"])
        assert "Night 1 in progress" in result.output

        result = runner.invoke(app, ["start"])
        assert result.exit_code == 1
        assert "already in progress" in result.output

        result = runner.invoke(app, ["stop"])
        assert result.exit_code == 0
        assert "Stopped night 1" in result.output
        assert "sleeptracker rate 1" in result.output

        result = runner.invoke(app, ["rate", "1", "4"])
        assert result.exit_code == 0
        assert "Pretty good" in result.output

    def test_stop_without_night(self, default_db):
        result = runner.invoke(app, ["stop"])
        assert result.exit_code == 1
        assert "No night in progress" in result.output

    def test_rate_errors(self, default_db):
        result = runner.invoke(app, ["rate", "1", "3"])
        assert result.exit_code == 1
        assert "not found" in result.output

        runner.invoke(app, ["start"])
        result = runner.invoke(app, ["rate", "1", "3"])
        assert result.exit_code == 1
        assert "in progress" in result.output

    def test_history(self, default_db):
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "No nights recorded" in result.output

        runner.invoke(app, ["start"])
        runner.invoke(app, ["stop"])
        runner.invoke(app, ["start"])
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "Sleep History" in result.output
        assert "in progress" in result.output

    def test_clear(self, default_db):
        runner.invoke(app, ["start"])

        result = runner.invoke(app, ["clear"], input="n\n")
        assert result.exit_code == 1
        assert "Recorded nights: 1" in runner.invoke(app, ["status"]).output

        result = runner.invoke(app, ["clear", "--yes"])
        assert result.exit_code == 0
        assert "Cleared" in result.output
        assert "Recorded nights: 0" in runner.invoke(app, ["status"]).output

    def test_storage_error(self, default_db, tmp_path, monkeypatch):
        import sleeptracker.tracker.store as store_mod

        # A directory cannot be opened as a database
        monkeypatch.setattr(store_mod, "DB_PATH", tmp_path)
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Storage error" in result.output
