"""
Error taxonomy for Git Chronos.

Fatal categories (configuration, health check, instance conflict, lock
acquisition) terminate the process after logging. Persistence and execution
errors are handled at the tick boundary so the scheduler keeps running.
"""

from typing import Optional


class ChronosError(Exception):
    """Base class for all Git Chronos errors."""


class ConfigurationError(ChronosError):
    """Invalid configuration detected before any state is touched."""


class HealthCheckFailure(ChronosError):
    """The repository or one of the state files is not usable."""


class InstanceConflict(ChronosError):
    """Another live process owns the instance lock."""

    def __init__(self, pid: Optional[int], lock_path: str):
        self.pid = pid
        self.lock_path = lock_path
        owner = f"PID {pid}" if pid is not None else "another process"
        super().__init__(f"Already running as {owner} (lock: {lock_path})")


class LockAcquisitionError(ChronosError):
    """The instance lock could not be inspected or written."""


class PersistenceError(ChronosError):
    """Tracker or log state could not be written to disk."""


class ExecutionError(ChronosError):
    """
    A commit attempt failed.

    ``committed`` is True when the local commit was created before the
    failure (for example a rejected push), so it still counts against the
    daily quota.
    """

    def __init__(self, message: str, committed: bool = False):
        self.committed = committed
        super().__init__(message)


class TransientExecutionError(ExecutionError):
    """A retryable Git failure persisted through every attempt."""


class PermanentExecutionError(ExecutionError):
    """A Git or file failure that retrying will not fix."""
