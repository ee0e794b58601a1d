"""
Data models for Git Chronos.

This module provides:
- The persisted commit tracker record
- The per-tick run policy and tick report
- Commit results returned by the executor
- Process exit codes
"""

from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ExitCode(IntEnum):
    """Process exit status."""
    OK = 0
    CONFIGURATION = 2
    HEALTH_CHECK = 3
    INSTANCE_CONFLICT = 4
    LOCK_FAILURE = 5


class SkipReason(Enum):
    """Why a tick performed no commits."""
    WEEKEND = "weekend"
    OFF_HOURS = "off-hours"
    QUOTA_EXHAUSTED = "quota-exhausted"


class TickOutcome(Enum):
    """Result category of a scheduler tick."""
    SKIPPED = "skipped"
    RAN = "ran"


class CommitTrackerRecord(BaseModel):
    """
    Durable count of commits made on the day of ``last_run_date``.

    Stored as JSON with camelCase keys; unknown keys are ignored on read.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    commit_count: int = Field(default=0, ge=0, alias="commitCount", description="Commits made since last_run_date")
    last_run_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="lastRunDate",
        description="Timestamp of the last recorded activity",
    )

    @field_validator("last_run_date")
    @classmethod
    def ensure_aware(cls, v):
        """Naive timestamps are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def local_date(self, zone: ZoneInfo) -> date:
        return self.last_run_date.astimezone(zone).date()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class RunPolicy(BaseModel):
    """Eligibility of the current moment for a burst; recomputed every tick."""

    within_working_hours: bool
    is_allowed_day: bool
    quota_remaining: int = Field(ge=0)


class CommitResult(BaseModel):
    """Outcome of a successful executor call."""

    attempts: int = Field(ge=1, description="Stage/commit/publish attempts used")
    pushed: bool = Field(default=False, description="Whether the commit was pushed")
    committed_at: datetime


class TickResult(BaseModel):
    """Report of one scheduler tick."""

    outcome: TickOutcome
    reason: Optional[SkipReason] = None
    intended: int = Field(default=0, ge=0, description="Commits drawn for the burst")
    planned: int = Field(default=0, ge=0, description="Commits allowed by the remaining quota")
    committed: int = Field(default=0, ge=0, description="Commits that succeeded")
    error: Optional[str] = Field(default=None, description="Execution failure that stopped the burst")

    @classmethod
    def skipped(cls, reason: SkipReason) -> "TickResult":
        return cls(outcome=TickOutcome.SKIPPED, reason=reason)

    @computed_field
    @property
    def ended_early(self) -> bool:
        """True when the daily quota capped the intended burst."""
        return self.intended > self.planned
