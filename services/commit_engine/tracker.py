"""
Persistent daily commit tracker.

The JSON record on disk is the source of truth for quota enforcement. It is
read once at startup and rewritten in full after every mutation through a
temporary file and an atomic replace, so readers never see a partial write.
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from shared.exceptions import PersistenceError
from shared.models import CommitTrackerRecord

logger = logging.getLogger(__name__)


class CommitTracker:
    """Durable counter of commits made today, with date rollover."""

    def __init__(self, path: Path, zone: ZoneInfo):
        self.path = Path(path)
        self.zone = zone
        self.record = CommitTrackerRecord()

    def peek(self) -> Optional[CommitTrackerRecord]:
        """
        Read the persisted record without modifying anything.

        Returns:
            The record, or None when the file does not exist.

        Raises:
            OSError: if the file exists but cannot be read.
            ValueError: if the content is not a valid record.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return CommitTrackerRecord.model_validate_json(text)

    def load(self) -> CommitTrackerRecord:
        """Load the persisted record, reinitialising it when missing or corrupt."""
        try:
            record = self.peek()
        except (OSError, ValueError) as e:
            logger.error(f"Tracker file {self.path} is unreadable, starting from zero: {e}")
            record = None
        else:
            if record is None:
                logger.info(f"Tracker file {self.path} not found, creating it")

        if record is None:
            self.record = CommitTrackerRecord()
            try:
                self.save()
            except PersistenceError as e:
                logger.error(str(e))
        else:
            self.record = record
            logger.debug(f"Loaded tracker: {self.record.commit_count} commits on {self.record.local_date(self.zone)}")
        return self.record

    def _roll_over(self, now: datetime) -> None:
        if self.record.local_date(self.zone) != now.astimezone(self.zone).date():
            logger.info(f"New day detected, resetting commit count (was {self.record.commit_count})")
            self.record.commit_count = 0
            self.record.last_run_date = now

    def remaining_today(self, daily_limit: int, now: Optional[datetime] = None) -> int:
        """Commits still allowed today under ``daily_limit``."""
        now = now or datetime.now(timezone.utc)
        self._roll_over(now)
        return max(0, daily_limit - self.record.commit_count)

    def record_commit(self, now: Optional[datetime] = None) -> int:
        """
        Count one successful commit and persist immediately.

        The in-memory increment stands even when the write fails.

        Raises:
            PersistenceError: if the record could not be written.
        """
        now = now or datetime.now(timezone.utc)
        self._roll_over(now)
        self.record.commit_count += 1
        self.record.last_run_date = now
        self.save()
        return self.record.commit_count

    def save(self) -> None:
        """Overwrite the persisted record atomically."""
        payload = self.record.to_json()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"Failed to write tracker file {self.path}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Could not remove temporary tracker file {tmp_path}")
            raise PersistenceError(f"Failed to write tracker file {self.path}: {e}") from e
