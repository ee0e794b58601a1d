"""
Commit Engine composition and process lifecycle.

The engine brackets the whole run with the instance lock:
- check and acquire the lock (conflicts abort before any state changes)
- open or initialise the repository and check out the branch
- load the tracker, wire the executor, health check and scheduler
- route termination signals to the scheduler and tear down exactly once
"""

import asyncio
import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from git import Repo
from git.exc import CommandError, InvalidGitRepositoryError, NoSuchPathError

from config.settings import ChronosSettings
from services.commit_engine.executor import CommitExecutor
from services.commit_engine.health import HealthChecker
from services.commit_engine.lock import InstanceLock
from services.commit_engine.scheduler import RunScheduler
from services.commit_engine.shutdown import ShutdownCoordinator
from services.commit_engine.tracker import CommitTracker
from shared.exceptions import HealthCheckFailure, InstanceConflict, LockAcquisitionError
from shared.models import ExitCode

logger = logging.getLogger(__name__)


def ensure_branch(repo: Repo, branch: str) -> None:
    """Check out ``branch``, creating it from HEAD or as the unborn HEAD."""
    if not repo.head.is_valid():
        repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
    elif branch in repo.heads:
        if repo.head.is_detached or repo.active_branch.name != branch:
            repo.git.checkout(branch)
    else:
        repo.git.checkout("-b", branch)


def exclude_state_files(repo: Repo, settings: ChronosSettings) -> None:
    """Keep tracker, lock and log files inside the work tree out of commits."""
    root = Path(repo.working_tree_dir).resolve()
    entries = []
    for path in (settings.tracker_path, settings.lock_path, settings.log_path):
        try:
            entries.append("/" + path.resolve().relative_to(root).as_posix())
        except ValueError:
            continue
    if not entries:
        return

    exclude_file = Path(repo.git_dir) / "info" / "exclude"
    try:
        existing = exclude_file.read_text(encoding="utf-8").splitlines() if exclude_file.exists() else []
        missing = [entry for entry in entries if entry not in existing]
        if missing:
            exclude_file.parent.mkdir(parents=True, exist_ok=True)
            with open(exclude_file, "a", encoding="utf-8") as f:
                if existing and existing[-1] != "":
                    f.write("\n")
                f.write("\n".join(missing) + "\n")
    except OSError as e:
        logger.warning(f"Could not update {exclude_file}: {e}")


def open_repository(settings: ChronosSettings) -> Repo:
    """Open the repository, initialising it when the directory is not one yet."""
    try:
        repo = Repo(settings.repo_path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        settings.repo_path.mkdir(parents=True, exist_ok=True)
        repo = Repo.init(settings.repo_path)
        logger.info(f"Git repo initialized at {settings.repo_path}")

    ensure_branch(repo, settings.branch)
    exclude_state_files(repo, settings)
    return repo


class ChronosEngine:
    """Owns every component for one process lifetime."""

    def __init__(
        self,
        settings: ChronosSettings,
        lock: Optional[InstanceLock] = None,
        tracker: Optional[CommitTracker] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.lock = lock or InstanceLock(settings.lock_path)
        self.tracker = tracker or CommitTracker(settings.tracker_path, settings.zone)
        self.coordinator = ShutdownCoordinator(self.tracker, self.lock)
        self.scheduler: Optional[RunScheduler] = None
        self._rng = rng
        self._clock = clock

    def build_scheduler(self, repo: Repo) -> RunScheduler:
        executor = CommitExecutor(self.settings, repo, clock=self._clock)
        health = HealthChecker(self.settings, repo)
        scheduler = RunScheduler(self.settings, self.tracker, executor, health, rng=self._rng, clock=self._clock)
        # retry waits end early on a stop request
        executor.sleep = scheduler.pause
        return scheduler

    async def run(self, once: bool = False) -> ExitCode:
        """Run until shutdown and return the process exit code."""
        try:
            self.lock.check()
            self.lock.acquire()
        except InstanceConflict as e:
            logger.error(str(e))
            return ExitCode.INSTANCE_CONFLICT
        except LockAcquisitionError as e:
            logger.error(f"Cannot guarantee a single instance: {e}")
            return ExitCode.LOCK_FAILURE

        try:
            try:
                repo = open_repository(self.settings)
            except CommandError as e:
                raise HealthCheckFailure(f"Repository setup failed: {e}") from e

            self.tracker.load()
            self.scheduler = self.build_scheduler(repo)
            self.coordinator.install(asyncio.get_running_loop(), self.scheduler)
            logger.info("Starting Chronos sequence")
            await self.scheduler.run(once=once)
            return ExitCode.OK
        except HealthCheckFailure as e:
            logger.error(f"Health check failed: {e}")
            return ExitCode.HEALTH_CHECK
        finally:
            self.coordinator.uninstall()
            self.coordinator.teardown()
