"""Unit tests for the timebooker CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from timebooker.cli.app import app
from timebooker.models.booking import BatchSummary, ItemResult, ItemStatus, Stage

runner = CliRunner()


def _summary(*results: ItemResult) -> BatchSummary:
    summary = BatchSummary()
    for result in results:
        summary.add(result)
    return summary


class TestApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "timebooker" in result.output

    def test_no_command_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "book" in result.output


class TestSettingsCommands:
    def test_validate(self):
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 0
        assert "Settings are valid" in result.output
        assert "Remote" in result.output

    def test_show_masks_password(self, monkeypatch):
        monkeypatch.setenv("TIMEBOOKER_PORTAL__PASSWORD", "hunter2")
        result = runner.invoke(app, ["settings", "show"])
        assert result.exit_code == 0
        assert "hunter2" not in result.output
        assert "********" in result.output


class TestBookSchedule:
    def test_resolves_weekdays(self, monkeypatch):
        monkeypatch.setenv("TIMEBOOKER_BOOKING__WEEKDAY_MODES", "Mon:Remote")
        result = runner.invoke(app, ["book", "schedule", "2025-03-03", "2025-03-04", "--mode", "Office"])
        assert result.exit_code == 0
        assert '"Mon"' in result.output
        assert '"Remote"' in result.output
        assert '"Office"' in result.output

    def test_mode_is_canonicalized(self):
        result = runner.invoke(app, ["book", "schedule", "2025-03-04", "--mode", "remote"])
        assert result.exit_code == 0
        assert '"Remote"' in result.output
        assert '"remote"' not in result.output

    def test_unknown_mode(self):
        result = runner.invoke(app, ["book", "schedule", "2025-03-04", "--mode", "Lab"])
        assert result.exit_code == 1
        assert "Unknown category" in result.output

    def test_invalid_day(self):
        result = runner.invoke(app, ["book", "schedule", "03/03/2025"])
        assert result.exit_code == 1
        assert "YYYY-MM-DD" in result.output


class TestBookRun:
    @patch("timebooker.worker.jobs.configure_logging")
    @patch("timebooker.booking.runner.run_booking", new_callable=AsyncMock)
    def test_all_booked(self, mock_run, _mock_logging):
        mock_run.return_value = _summary(
            ItemResult(item_id="2025-03-03", category="Remote", status=ItemStatus.BOOKED, selected_text="Home Office")
        )

        result = runner.invoke(app, ["book", "run", "--start", "8:30", "--mode", "Remote"])

        assert result.exit_code == 0
        kwargs = mock_run.await_args.kwargs
        assert kwargs["start_time"] == "08:30"
        assert kwargs["end_time"] is None
        assert kwargs["category"] == "Remote"
        assert kwargs["dry_run"] is None
        assert "1 succeeded, 0 failed" in result.output

    @patch("timebooker.worker.jobs.configure_logging")
    @patch("timebooker.booking.runner.run_booking", new_callable=AsyncMock)
    def test_failed_item_exits_one(self, mock_run, _mock_logging):
        mock_run.return_value = _summary(
            ItemResult(
                item_id="2025-03-04",
                category="Remote",
                status=ItemStatus.FAILED,
                stage=Stage.APPLY,
                error="overlay stayed open",
            )
        )

        result = runner.invoke(app, ["book", "run", "--json"])

        assert result.exit_code == 1
        assert "overlay stayed open" in result.output

    @patch("timebooker.worker.jobs.configure_logging")
    @patch("timebooker.booking.runner.run_booking", new_callable=AsyncMock)
    def test_debug_save_forces_saving(self, mock_run, _mock_logging):
        mock_run.return_value = _summary()

        result = runner.invoke(app, ["book", "run", "--debug", "--save"])

        assert result.exit_code == 0
        assert mock_run.await_args.kwargs["debug"] is True
        assert mock_run.await_args.kwargs["dry_run"] is False
        assert "Nothing to book" in result.output

    @patch("timebooker.worker.jobs.configure_logging")
    def test_invalid_start_time(self, _mock_logging):
        result = runner.invoke(app, ["book", "run", "--start", "25:00"])
        assert result.exit_code == 2
