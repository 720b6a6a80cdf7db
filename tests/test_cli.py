"""Tests for the command-line interface."""

import json
from datetime import date, datetime
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from slotwise.adapters import SnapshotError
from slotwise.cli import main
from slotwise.config import Config
from slotwise.coordination import ScanGate
from slotwise.core.calendar import EnergyLevel, FreeSlot
from slotwise.core.durations import DurationEstimator
from slotwise.core.learning import RescheduleEvent, RescheduleReason, SchedulingInsight
from slotwise.core.lifecycle import StateTransition, TaskState
from slotwise.core.matching import MatchResult
from slotwise.core.reconcile import ReconcileReport, UnknownTaskError
from slotwise.workflows import DayScan, ScanType


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def config(tmp_path):
    config = Config()
    with patch("slotwise.cli.load_config", return_value=config), patch("slotwise.workflows.DATA_DIR", tmp_path):
        yield config


class TestSlots:
    @patch("slotwise.cli.slots_for_day")
    def test_lists_slots(self, mock_slots, runner):
        mock_slots.return_value = [
            FreeSlot(datetime(2025, 1, 15, 8, 0), datetime(2025, 1, 15, 9, 0)),
            FreeSlot(datetime(2025, 1, 15, 9, 0), datetime(2025, 1, 15, 9, 50), EnergyLevel.HIGH),
        ]
        result = runner.invoke(main, ["slots", "--date", "2025-01-15"])

        assert result.exit_code == 0
        assert "08:00-09:00 (60 min)" in result.output
        assert "09:00-09:50 (50 min) [high]" in result.output
        assert mock_slots.call_args.args[2] == date(2025, 1, 15)

    @patch("slotwise.cli.slots_for_day")
    def test_json(self, mock_slots, runner):
        mock_slots.return_value = [FreeSlot(datetime(2025, 1, 15, 8, 0), datetime(2025, 1, 15, 9, 0))]
        result = runner.invoke(main, ["slots", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"start": "2025-01-15T08:00:00", "end": "2025-01-15T09:00:00", "minutes": 60, "energy": None}
        ]

    def test_bad_date(self, runner):
        result = runner.invoke(main, ["slots", "--date", "tomorrow"])
        assert result.exit_code != 0

    @patch("slotwise.cli.slots_for_day")
    def test_missing_snapshot(self, mock_slots, runner):
        mock_slots.side_effect = SnapshotError("Snapshot not found: calendar.json")
        result = runner.invoke(main, ["slots"])

        assert result.exit_code == 1
        assert "Error: Snapshot not found" in result.output


class TestScan:
    @patch("slotwise.cli.run_scan")
    def test_json(self, mock_scan, runner):
        scan = DayScan(day=date(2025, 1, 15), scan_type=ScanType.MANUAL, scanned_at=datetime(2025, 1, 15, 7))
        mock_scan.return_value = scan
        result = runner.invoke(main, ["scan", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == scan.to_dict()

    @patch("slotwise.cli.run_scan")
    def test_no_suggestions(self, mock_scan, runner):
        mock_scan.return_value = DayScan(
            day=date(2025, 1, 15),
            scan_type=ScanType.MANUAL,
            scanned_at=datetime(2025, 1, 15, 7),
            result=MatchResult(),
        )
        result = runner.invoke(main, ["scan", "--date", "2025-01-15"])

        assert result.exit_code == 0
        assert "No suggestions." in result.output
        assert mock_scan.call_args.kwargs["day"] == date(2025, 1, 15)

    @patch("slotwise.cli.run_scan")
    def test_skipped_while_service_scans(self, mock_scan, runner, tmp_path):
        service_gate = ScanGate("service", lock_file=tmp_path / "scan.lock")
        result = service_gate.run(runner.invoke, main, ["scan"])

        assert result.exit_code == 0
        assert "A scan is already running" in result.output
        mock_scan.assert_not_called()

    @patch("slotwise.cli.run_week")
    def test_week_skipped_while_service_scans(self, mock_week, runner, tmp_path):
        service_gate = ScanGate("service", lock_file=tmp_path / "scan.lock")
        result = service_gate.run(runner.invoke, main, ["week"])

        assert "A scan is already running" in result.output
        mock_week.assert_not_called()


class TestTracking:
    @patch("slotwise.cli.track_event")
    def test_track(self, mock_track, runner, config):
        mock_track.return_value = StateTransition("t1", TaskState.PENDING, TaskState.APPROVED, "suggestion approved")
        result = runner.invoke(main, ["track", "t1", "e1", "2025-01-15T10:00", "2025-01-15T11:00", "--title", "Report"])

        assert result.exit_code == 0
        assert "t1: pending -> approved" in result.output
        mock_track.assert_called_once_with(
            config, "t1", "e1", datetime(2025, 1, 15, 10), datetime(2025, 1, 15, 11), "Report"
        )

    @patch("slotwise.cli.mark_task")
    def test_mark_unknown_task(self, mock_mark, runner):
        mock_mark.side_effect = UnknownTaskError("No task t9")
        result = runner.invoke(main, ["mark", "t9", "in_progress"])

        assert result.exit_code == 1
        assert "No task t9" in result.output

    def test_mark_invalid_state(self, runner):
        result = runner.invoke(main, ["mark", "t1", "sideways"])
        assert result.exit_code == 2

    @patch("slotwise.cli.mark_task")
    def test_mark_completed_with_list(self, mock_mark, runner, config):
        mock_mark.return_value = StateTransition("t1", TaskState.AWAITING_REVIEW, TaskState.COMPLETED, "done")
        result = runner.invoke(main, ["mark", "t1", "completed", "--list", "Work"])

        assert result.exit_code == 0
        mock_mark.assert_called_once_with(config, "t1", TaskState.COMPLETED, "", group_key="Work")

    @patch("slotwise.cli.resolve_conflict")
    def test_resolve_cancel(self, mock_resolve, runner, config):
        mock_resolve.return_value = StateTransition("t1", TaskState.CONFLICTED, TaskState.CANCELLED, "conflict resolved: cancel")
        result = runner.invoke(main, ["resolve", "t1", "--cancel"])

        assert result.exit_code == 0
        mock_resolve.assert_called_once_with(config, "t1", False)

    @patch("slotwise.cli.run_reconcile")
    def test_reconcile_in_sync(self, mock_reconcile, runner):
        mock_reconcile.return_value = ReconcileReport()
        result = runner.invoke(main, ["reconcile"])

        assert result.exit_code == 0
        assert "Everything is in sync." in result.output

    @patch("slotwise.cli.run_reconcile")
    def test_reconcile_json(self, mock_reconcile, runner):
        mock_reconcile.return_value = ReconcileReport(
            transitions=[StateTransition("t1", TaskState.APPROVED, TaskState.CANCELLED, "event deleted")]
        )
        result = runner.invoke(main, ["reconcile", "--json"])

        data = json.loads(result.output)
        assert data["transitions"][0]["new_state"] == "cancelled"
        assert data["moves"] == []


class TestReschedule:
    @patch("slotwise.cli.reschedule_task")
    def test_reschedule(self, mock_reschedule, runner, config):
        mock_reschedule.return_value = RescheduleEvent(
            task_id="t1",
            title="Report",
            group_key="Work",
            reason=RescheduleReason.TOO_LONG,
            scheduled_start=datetime(2025, 1, 15, 10),
            scheduled_end=datetime(2025, 1, 15, 11),
            occurred_at=datetime(2025, 1, 15, 12),
        )
        result = runner.invoke(main, ["reschedule", "t1", "too_long", "--list", "Work"])

        assert result.exit_code == 0
        assert "t1: rescheduled (too_long)" in result.output
        mock_reschedule.assert_called_once_with(config, "t1", RescheduleReason.TOO_LONG, "Work", "", None, None)

    def test_reschedule_untracked_without_block(self, runner):
        result = runner.invoke(main, ["reschedule", "t9", "bad_time", "--list", "Work"])

        assert result.exit_code == 1
        assert "No scheduled block known for task t9" in result.output

    def test_reschedule_requires_list(self, runner):
        result = runner.invoke(main, ["reschedule", "t1", "too_long"])
        assert result.exit_code == 2

    @patch("slotwise.cli.reschedule_insights")
    def test_insights(self, mock_insights, runner):
        mock_insights.return_value = [
            SchedulingInsight(RescheduleReason.TOO_LONG, "Duration underestimates", "Estimates increased.")
        ]
        result = runner.invoke(main, ["insights"])
        assert "Duration underestimates: Estimates increased." in result.output

    def test_insights_empty(self, runner):
        result = runner.invoke(main, ["insights"])
        assert "No reschedule patterns yet." in result.output


class TestDurations:
    @patch("slotwise.cli.record_completion")
    def test_complete(self, mock_record, runner, config):
        estimator = DurationEstimator()
        estimator.record_completion("Work", 25)
        mock_record.return_value = [estimator.snapshot("Work")]

        result = runner.invoke(main, ["complete", "Work", "25"])

        assert result.exit_code == 0
        assert "Work: 25 min avg over 1 sample(s)" in result.output
        mock_record.assert_called_once_with(config, "Work", 25.0, "")

    def test_complete_rejects_zero(self, runner):
        result = runner.invoke(main, ["complete", "Work", "0"])
        assert result.exit_code == 1
        assert "Minutes must be positive" in result.output

    @patch("slotwise.cli.list_estimates")
    def test_estimates_empty(self, mock_list, runner):
        mock_list.return_value = []
        result = runner.invoke(main, ["estimates"])
        assert "No duration history yet." in result.output


class TestWatch:
    @patch("slotwise.cli.run_service")
    def test_starts_service(self, mock_service, runner):
        result = runner.invoke(main, ["watch"])
        assert result.exit_code == 0
        mock_service.assert_called_once()
