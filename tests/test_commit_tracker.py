"""
Unit tests for the persistent commit tracker.

This module tests:
- Loading, creation and corruption recovery
- Daily quota computation and timezone-aware rollover
- Write-through persistence after every commit
"""

import json

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

from services.commit_engine.tracker import CommitTracker
from shared.exceptions import PersistenceError
from shared.models import CommitTrackerRecord

NEW_YORK = ZoneInfo("America/New_York")


def read_record(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestCommitTrackerLoad:
    """Test cases for CommitTracker.load."""

    @pytest.fixture
    def tracker_path(self, tmp_path):
        return tmp_path / "commit_tracker.json"

    def test_load_missing_file_creates_zero_record(self, tracker_path):
        """Test that a missing tracker file is created with zero values."""
        tracker = CommitTracker(tracker_path, NEW_YORK)

        record = tracker.load()

        assert record.commit_count == 0
        assert tracker_path.exists()
        assert read_record(tracker_path)["commitCount"] == 0

    def test_load_existing_record(self, tracker_path):
        """Test loading a valid record."""
        tracker_path.write_text('{"commitCount": 7, "lastRunDate": "2026-10-19T14:00:00Z"}', encoding="utf-8")
        tracker = CommitTracker(tracker_path, NEW_YORK)

        record = tracker.load()

        assert record.commit_count == 7
        assert record.last_run_date == datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)

    def test_load_corrupt_file_reinitializes(self, tracker_path):
        """Test that corruption is non-fatal and the file is rewritten."""
        tracker_path.write_text("{not json", encoding="utf-8")
        tracker = CommitTracker(tracker_path, NEW_YORK)

        record = tracker.load()

        assert record.commit_count == 0
        assert read_record(tracker_path)["commitCount"] == 0

    def test_load_invalid_values_reinitializes(self, tracker_path):
        """Test that schema violations are treated as corruption."""
        tracker_path.write_text('{"commitCount": -3, "lastRunDate": "yesterday"}', encoding="utf-8")
        tracker = CommitTracker(tracker_path, NEW_YORK)

        assert tracker.load().commit_count == 0

    def test_load_ignores_unknown_fields(self, tracker_path):
        """Test forward compatibility of the persisted record."""
        tracker_path.write_text(
            '{"commitCount": 2, "lastRunDate": "2026-10-19T14:00:00Z", "future": {"a": 1}}',
            encoding="utf-8",
        )
        tracker = CommitTracker(tracker_path, NEW_YORK)

        assert tracker.load().commit_count == 2

    def test_load_survives_unwritable_location(self, tmp_path):
        """Test that a failed initial write does not halt loading."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        tracker = CommitTracker(blocker / "commit_tracker.json", NEW_YORK)

        record = tracker.load()

        assert record.commit_count == 0

    def test_peek_does_not_create_file(self, tracker_path):
        """Test that peek is read-only."""
        tracker = CommitTracker(tracker_path, NEW_YORK)

        assert tracker.peek() is None
        assert not tracker_path.exists()


class TestRemainingToday:
    """Test cases for CommitTracker.remaining_today."""

    @pytest.fixture
    def now(self):
        # Monday 10:00 in New York
        return datetime(2026, 10, 19, 10, 0, tzinfo=NEW_YORK)

    @pytest.fixture
    def tracker(self, tmp_path):
        return CommitTracker(tmp_path / "commit_tracker.json", NEW_YORK)

    def test_same_day_subtracts_count(self, tracker, now):
        """Test remaining quota on the same day."""
        tracker.record = CommitTrackerRecord(commit_count=4, last_run_date=now - timedelta(hours=1))

        assert tracker.remaining_today(15, now) == 11

    def test_idempotent_and_never_negative(self, tracker, now):
        """Test repeated reads and over-limit counts."""
        tracker.record = CommitTrackerRecord(commit_count=20, last_run_date=now)

        first = tracker.remaining_today(15, now)
        second = tracker.remaining_today(15, now)

        assert first == second == 0

    def test_rollover_resets_full_quota(self, tracker, now):
        """Test that yesterday's exhausted quota resets today."""
        tracker.record = CommitTrackerRecord(commit_count=15, last_run_date=now - timedelta(days=1))

        assert tracker.remaining_today(15, now) == 15
        assert tracker.record.commit_count == 0
        assert tracker.record.last_run_date == now

    def test_rollover_uses_configured_timezone(self, tracker):
        """Test that calendar days are compared in the configured timezone."""
        # 23:00 on the 18th in New York, already the 19th in UTC
        last = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
        now = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)
        tracker.record = CommitTrackerRecord(commit_count=15, last_run_date=last)

        assert tracker.remaining_today(15, now) == 15

    def test_no_rollover_late_evening(self, tmp_path):
        """Test that a late-evening local commit still counts on the same local day."""
        tracker = CommitTracker(tmp_path / "t.json", NEW_YORK)
        tracker.record = CommitTrackerRecord(
            commit_count=5, last_run_date=datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
        )
        # 23:30 on the 19th in New York, the 20th in UTC
        now = datetime(2026, 10, 20, 3, 30, tzinfo=timezone.utc)

        assert tracker.remaining_today(15, now) == 10


class TestRecordCommit:
    """Test cases for CommitTracker.record_commit."""

    @pytest.fixture
    def tracker(self, tmp_path):
        tracker = CommitTracker(tmp_path / "commit_tracker.json", NEW_YORK)
        tracker.load()
        return tracker

    def test_write_through_after_each_commit(self, tracker):
        """Test that the file reflects the count after every call."""
        now = datetime.now(NEW_YORK)

        for expected in range(1, 6):
            assert tracker.record_commit(now) == expected
            assert read_record(tracker.path)["commitCount"] == expected

        assert tracker.record.commit_count == 5

    def test_record_commit_applies_rollover(self, tracker):
        """Test that the first commit of a new day starts from one."""
        yesterday = datetime(2026, 10, 18, 12, 0, tzinfo=NEW_YORK)
        tracker.record = CommitTrackerRecord(commit_count=9, last_run_date=yesterday)

        count = tracker.record_commit(datetime(2026, 10, 19, 9, 30, tzinfo=NEW_YORK))

        assert count == 1
        assert read_record(tracker.path)["lastRunDate"].startswith("2026-10-19T09:30:00")

    def test_write_failure_keeps_in_memory_increment(self, tracker):
        """Test PersistenceError on write failure."""
        with patch("services.commit_engine.tracker.tempfile.mkstemp", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="disk full"):
                tracker.record_commit()

        assert tracker.record.commit_count == 1
        assert read_record(tracker.path)["commitCount"] == 0

    def test_save_leaves_no_temporary_files(self, tracker):
        """Test atomic replace cleanup."""
        tracker.record_commit()
        tracker.save()

        assert [p.name for p in tracker.path.parent.iterdir()] == [tracker.path.name]

    def test_failed_replace_removes_temporary_file(self, tracker):
        """Test that a failed replace does not leave partial files behind."""
        with patch("services.commit_engine.tracker.os.replace", side_effect=OSError("busy")):
            with pytest.raises(PersistenceError):
                tracker.save()

        assert [p.name for p in tracker.path.parent.iterdir()] == [tracker.path.name]
