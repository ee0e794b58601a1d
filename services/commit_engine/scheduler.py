"""
Run scheduler.

A cooperative, self-rescheduling loop. Each tick checks health, the weekday
and working-hour window and the remaining daily quota, then performs a burst
of sequential commits with random pauses. Stop requests arrive through an
``asyncio.Event`` and are honoured at every pause.
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Callable, Optional

from config.settings import ChronosSettings
from services.commit_engine.executor import CommitExecutor
from services.commit_engine.health import HealthChecker
from services.commit_engine.tracker import CommitTracker
from shared.exceptions import ExecutionError, HealthCheckFailure, PersistenceError
from shared.models import RunPolicy, SkipReason, TickOutcome, TickResult

logger = logging.getLogger(__name__)


class RunScheduler:
    """Decides when to commit and drives the executor."""

    def __init__(
        self,
        settings: ChronosSettings,
        tracker: CommitTracker,
        executor: CommitExecutor,
        health: HealthChecker,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.tracker = tracker
        self.executor = executor
        self.health = health
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(settings.zone))
        self._stop = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to finish the current step and exit."""
        self._stop.set()

    async def pause(self, seconds: float) -> bool:
        """Sleep unless stopped. Returns True if a stop was requested."""
        if seconds <= 0:
            return self.stopping
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    def policy(self, now: datetime) -> RunPolicy:
        local = now.astimezone(self.settings.zone)
        return RunPolicy(
            within_working_hours=self.settings.schedule_start <= local.hour < self.settings.schedule_end,
            is_allowed_day=self.settings.enable_weekends or local.weekday() < 5,
            quota_remaining=self.tracker.remaining_today(self.settings.daily_limit, now),
        )

    def next_delay(self, now: datetime) -> float:
        """Long interval inside the eligible window, short recheck interval outside it."""
        policy = self.policy(now)
        if self.settings.enable_weekends or (policy.is_allowed_day and policy.within_working_hours):
            return self.settings.tick_interval
        return self.settings.recheck_interval

    def _count_commit(self, result: TickResult) -> None:
        result.committed += 1
        try:
            self.tracker.record_commit(self._clock())
        except PersistenceError as e:
            logger.error(str(e))

    async def tick(self) -> TickResult:
        """
        Run one evaluation cycle.

        Raises:
            HealthCheckFailure: fatal, the caller must exit the process.
        """
        self.health.check()

        now = self._clock()
        policy = self.policy(now)

        if not policy.is_allowed_day:
            logger.info("Weekend mode disabled, standby until Monday")
            return TickResult.skipped(SkipReason.WEEKEND)

        if not policy.within_working_hours:
            logger.info(
                f"Outside working hours ({self.settings.schedule_start:02d}:00-"
                f"{self.settings.schedule_end:02d}:00 {self.settings.timezone})"
            )
            return TickResult.skipped(SkipReason.OFF_HOURS)

        if policy.quota_remaining == 0:
            logger.warning(f"Daily limit reached ({self.settings.daily_limit} commits)")
            return TickResult.skipped(SkipReason.QUOTA_EXHAUSTED)

        intended = self._rng.randint(self.settings.min_commits, self.settings.max_commits)
        planned = min(intended, policy.quota_remaining)
        result = TickResult(outcome=TickOutcome.RAN, intended=intended, planned=planned)
        logger.info(f"Starting burst of {planned} commits ({policy.quota_remaining} left today)")

        for index in range(planned):
            if self.stopping:
                break
            position = f"{index + 1}/{planned}"
            logger.info(f"Commit {position}...")
            try:
                await self.executor.execute()
            except ExecutionError as e:
                logger.error(f"Commit {position} failed: {e}")
                result.error = str(e)
                if e.committed:
                    # the local commit exists even though publishing failed
                    self._count_commit(result)
                break

            self._count_commit(result)
            logger.info(f"Commit {position} Synced")

            if index + 1 < planned:
                delay = self._rng.uniform(self.settings.commit_delay_min, self.settings.commit_delay_max)
                if await self.pause(delay):
                    break

        if result.ended_early:
            logger.warning(
                f"Daily limit reached: burst ended after {planned} of {intended} intended commits"
            )
        return result

    async def run(self, once: bool = False) -> None:
        """
        Tick until a stop is requested (or once, when ``once`` is set).

        Raises:
            HealthCheckFailure: propagated from a tick.
        """
        while not self.stopping:
            try:
                await self.tick()
            except HealthCheckFailure:
                raise
            except Exception:
                logger.exception("Unexpected error during tick")

            if once:
                break

            delay = self.next_delay(self._clock())
            logger.info(f"Next check in {delay / 60:g} minutes")
            if await self.pause(delay):
                break

        logger.info("Scheduler stopped")
