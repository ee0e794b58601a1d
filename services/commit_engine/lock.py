"""
Single-instance lock for the commit engine.

The lock is an advisory PID file: a marker whose recorded process is no
longer alive is stale and gets removed. Liveness is checked through an
injectable callable (``psutil.pid_exists`` by default).
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

import psutil

from shared.exceptions import InstanceConflict, LockAcquisitionError

logger = logging.getLogger(__name__)


class InstanceLock:
    """PID-file lock bracketing the engine's lifetime."""

    def __init__(
        self,
        path: Path,
        is_alive: Callable[[int], bool] = psutil.pid_exists,
        pid: Optional[int] = None,
    ):
        self.path = Path(path)
        self.pid = pid if pid is not None else os.getpid()
        self._is_alive = is_alive
        self._owned = False

    @property
    def owned(self) -> bool:
        return self._owned

    def read_owner(self) -> Optional[int]:
        """
        Return the PID recorded in the marker.

        Returns None when there is no marker or its content is not a PID.
        """
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        try:
            return int(text)
        except ValueError:
            return None

    def owner_alive(self, owner: Optional[int]) -> bool:
        if owner is None or owner <= 0 or owner == self.pid:
            return False
        return self._is_alive(owner)

    def check(self) -> None:
        """
        Ensure no live process holds the lock, clearing a stale marker.

        Raises:
            InstanceConflict: if the recorded owner is still running.
            LockAcquisitionError: if the marker cannot be read or removed.
        """
        if not self.path.exists():
            return

        try:
            owner = self.read_owner()
        except OSError as e:
            raise LockAcquisitionError(f"Cannot read lock file {self.path}: {e}") from e

        if self.owner_alive(owner):
            raise InstanceConflict(owner, str(self.path))

        logger.warning(f"Removing stale lock file {self.path} (PID {owner if owner is not None else 'unknown'})")
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise LockAcquisitionError(f"Cannot remove stale lock file {self.path}: {e}") from e

    def acquire(self) -> None:
        """
        Create the marker holding this process's PID.

        Raises:
            InstanceConflict: if another process created the marker first.
            LockAcquisitionError: if the marker cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LockAcquisitionError(f"Cannot create lock directory {self.path.parent}: {e}") from e

        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            raise InstanceConflict(self.read_owner(), str(self.path))
        except OSError as e:
            raise LockAcquisitionError(f"Cannot create lock file {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(str(self.pid))
        except OSError as e:
            try:
                self.path.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Could not remove partial lock file {self.path}")
            raise LockAcquisitionError(f"Cannot write lock file {self.path}: {e}") from e

        self._owned = True
        logger.info(f"Lock acquired: {self.path} (PID {self.pid})")

    def release(self) -> None:
        """Remove the marker if this process created it. Safe to call repeatedly."""
        if not self._owned:
            return
        self._owned = False
        try:
            self.path.unlink(missing_ok=True)
            logger.info(f"Lock released: {self.path}")
        except OSError as e:
            logger.error(f"Failed to remove lock file {self.path}: {e}")
