"""
Commit executor.

One call appends a timestamped line to the target file, stages everything,
commits with author and committer dates in the configured timezone, and
pushes when a remote is configured. Git failures matching a known transient
pattern are retried after a fixed delay; anything else aborts immediately.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional

from git import Repo
from git.exc import CommandError

from config.settings import ChronosSettings
from shared.exceptions import PermanentExecutionError, TransientExecutionError
from shared.models import CommitResult

logger = logging.getLogger(__name__)

TRANSIENT_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"could not resolve host",
        r"connection (refused|timed out|reset)",
        r"operation timed out",
        r"failed to connect",
        r"the remote end hung up unexpectedly",
        r"early eof",
        r"rpc failed",
        r"temporarily unavailable",
        r"index\.lock",
        r"unable to create '.*\.lock'",
        r"another git process",
    )
)


def describe_git_error(error: CommandError) -> str:
    """Condense a GitPython error into one line."""
    text = (error.stderr or "").strip() or str(error).strip()
    text = re.sub(r"^stderr:\s*", "", text)
    return " ".join(text.strip("'\" ").split())


def is_transient(error: CommandError) -> bool:
    """Whether a Git failure is expected to resolve on retry."""
    text = " ".join(part for part in (error.stderr, error.stdout, str(error)) if part)
    return any(pattern.search(text) for pattern in TRANSIENT_PATTERNS)


def format_marker_line(now: datetime) -> str:
    return f" Update at {now:%Y-%m-%d %H:%M:%S}\n"


class CommitExecutor:
    """Performs one file-change-and-commit unit of work."""

    def __init__(
        self,
        settings: ChronosSettings,
        repo: Repo,
        sleep: Callable[[float], Awaitable[Optional[bool]]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.repo = repo
        self.sleep = sleep
        self._clock = clock or (lambda: datetime.now(settings.zone))

    def has_remote(self) -> bool:
        if not self.settings.push_enabled:
            return False
        return any(remote.name == self.settings.remote for remote in self.repo.remotes)

    def mutate_target(self, now: datetime) -> None:
        """Append the marker line, creating the target file when absent."""
        target = self.settings.target_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "a", encoding="utf-8") as f:
                f.write(format_marker_line(now))
        except OSError as e:
            raise PermanentExecutionError(f"File modify failed: {e}") from e
        logger.debug(f"File modified: {target}")

    def stage_and_commit(self, now: datetime) -> None:
        stamp = now.isoformat(timespec="seconds")
        env = {"GIT_AUTHOR_DATE": stamp, "GIT_COMMITTER_DATE": stamp}
        self.repo.git.add(all=True)
        self.repo.git.commit("-m", self.settings.commit_message, env=env)

    def publish(self) -> None:
        self.repo.git.push(self.settings.remote, self.settings.branch)

    async def execute(self) -> CommitResult:
        """
        Run one commit cycle.

        The file mutation happens once. Retries repeat the stage, commit and
        publish steps that have not yet succeeded in this call. The retry
        sleep may return True to abandon the remaining attempts.

        Returns:
            CommitResult: attempts used and whether the commit was pushed.

        Raises:
            PermanentExecutionError: on a non-retryable failure.
            TransientExecutionError: when every attempt hit a transient failure
                or the retries were interrupted.

        Both errors carry ``committed=True`` when the local commit exists.
        """
        now = self._clock()
        self.mutate_target(now)

        push = self.has_remote()
        committed = False
        max_attempts = self.settings.retry_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                if not committed:
                    self.stage_and_commit(now)
                    committed = True
                if push:
                    self.publish()
                return CommitResult(attempts=attempt, pushed=push, committed_at=now)
            except CommandError as e:
                reason = describe_git_error(e)
                if not is_transient(e):
                    raise PermanentExecutionError(
                        f"Git operations failed: {reason}", committed=committed
                    ) from e
                if attempt >= max_attempts:
                    raise TransientExecutionError(
                        f"Git operations failed after {attempt} attempts: {reason}", committed=committed
                    ) from e
                logger.warning(
                    f"Transient Git failure (attempt {attempt}/{max_attempts}): {reason}; "
                    f"retrying in {self.settings.retry_delay:g}s"
                )
                if await self.sleep(self.settings.retry_delay):
                    raise TransientExecutionError(
                        f"Git operations interrupted after {attempt} attempts: {reason}", committed=committed
                    ) from e

        # retry_attempts >= 1 guarantees the loop returns or raises
        raise TransientExecutionError("Git operations were not attempted")
