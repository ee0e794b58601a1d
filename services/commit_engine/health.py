"""
Health check run at the start of every tick.

Any failure is fatal for the whole process, unlike a single failed commit.
"""

import logging
import os
from pathlib import Path
from typing import List

from git import Repo
from git.exc import CommandError

from config.settings import ChronosSettings
from shared.exceptions import HealthCheckFailure

logger = logging.getLogger(__name__)


def is_writable_or_creatable(path: Path) -> bool:
    """True when ``path`` can be written, or created in its nearest existing parent."""
    path = Path(path)
    if path.exists():
        return os.access(path, os.W_OK)
    for parent in path.parents:
        if parent.exists():
            return parent.is_dir() and os.access(parent, os.W_OK | os.X_OK)
    return False


class HealthChecker:
    """Verifies the repository, Git, the remote and the state file paths."""

    def __init__(self, settings: ChronosSettings, repo: Repo):
        self.settings = settings
        self.repo = repo

    def problems(self) -> List[str]:
        problems = []
        repo_dir = self.settings.repo_path

        if not os.access(repo_dir, os.W_OK):
            problems.append(f"Repository directory is not writable: {repo_dir}")

        try:
            self.repo.git.status("--porcelain")
        except CommandError as e:
            problems.append(f"git status failed: {e}")

        if self.settings.push_enabled and any(r.name == self.settings.remote for r in self.repo.remotes):
            try:
                self.repo.git.ls_remote("--heads", self.settings.remote)
            except CommandError as e:
                problems.append(f"Remote '{self.settings.remote}' is not reachable: {e}")

        for label, path in (
            ("Tracker file", self.settings.tracker_path),
            ("Target file", self.settings.target_path),
            ("Log file", self.settings.log_path),
        ):
            if not is_writable_or_creatable(path):
                problems.append(f"{label} is not writable: {path}")

        return problems

    def check(self) -> None:
        """
        Raises:
            HealthCheckFailure: listing every problem found.
        """
        problems = self.problems()
        if problems:
            raise HealthCheckFailure("; ".join(problems))
        logger.debug("Health check passed")
