"""
Configuration management for Git Chronos.

This module provides the single validated configuration object with:
- Environment variable support (``CHRONOS_`` prefix, optional ``.env`` file)
- Type validation and defaults
- Cross-field rules for commit bursts, quotas and the working window
- Conversion of validation problems into ``ConfigurationError``
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.exceptions import ConfigurationError


class ChronosSettings(BaseSettings):
    """
    Runtime settings for the commit engine.

    Relative file paths (target, tracker, lock and log files) are resolved
    against the repository directory.
    """

    # Repository
    repo_path: Path = Field(default_factory=Path.cwd, description="Path to the Git repository")
    branch: str = Field(default="main", min_length=1, description="Branch to commit to")
    remote: str = Field(default="origin", min_length=1, description="Remote to push to")
    push_enabled: bool = Field(default=True, description="Push after each commit when the remote exists")
    commit_message: str = Field(default="Auto commit", min_length=1, description="Commit message")

    # Scheduling
    timezone: str = Field(default="America/New_York", description="IANA timezone for schedule and commit dates")
    min_commits: int = Field(default=1, ge=1, description="Minimum commits per burst")
    max_commits: int = Field(default=10, ge=1, description="Maximum commits per burst")
    daily_limit: int = Field(default=15, ge=1, description="Absolute daily commit limit")
    commit_delay_min: float = Field(default=5.0, ge=0, description="Minimum delay between commits (seconds)")
    commit_delay_max: float = Field(default=55.0, ge=0, description="Maximum delay between commits (seconds)")
    schedule_start: int = Field(default=9, ge=0, le=23, description="First working hour (inclusive)")
    schedule_end: int = Field(default=17, ge=0, le=23, description="End of working window (exclusive)")
    enable_weekends: bool = Field(default=False, description="Allow commits on Saturday and Sunday")
    tick_interval: float = Field(default=3600.0, gt=0, description="Delay between ticks inside the window (seconds)")
    recheck_interval: float = Field(default=300.0, gt=0, description="Delay between ticks outside the window (seconds)")

    # Files
    target_file: Path = Field(default=Path("bot_activity.log"), description="File modified by each commit")
    commit_tracker_file: Path = Field(default=Path("commit_tracker.json"), description="Daily commit tracker")
    lock_file: Path = Field(default=Path("git_chronos.lock"), description="Single-instance lock marker")
    log_file: Path = Field(default=Path("bot_runtime.log"), description="Runtime log file")

    # Retries
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per commit for transient Git failures")
    retry_delay: float = Field(default=5.0, ge=0, description="Delay between attempts (seconds)")

    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_prefix="CHRONOS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("repo_path")
    @classmethod
    def resolve_repo_path(cls, v):
        return Path(v).expanduser().resolve()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_ranges(self):
        errors = []
        if self.max_commits < self.min_commits:
            errors.append("max_commits must be greater than or equal to min_commits")
        if self.daily_limit < self.min_commits or self.daily_limit < self.max_commits:
            errors.append("daily_limit must be at least min_commits and max_commits")
        if self.schedule_start >= self.schedule_end:
            errors.append("schedule_start must be earlier than schedule_end")
        if self.commit_delay_max < self.commit_delay_min:
            errors.append("commit_delay_max must be greater than or equal to commit_delay_min")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def resolve(self, path: Path) -> Path:
        """Resolve a configured file path against the repository directory."""
        path = Path(path).expanduser()
        if not path.is_absolute():
            path = self.repo_path / path
        return path

    @property
    def target_path(self) -> Path:
        return self.resolve(self.target_file)

    @property
    def tracker_path(self) -> Path:
        return self.resolve(self.commit_tracker_file)

    @property
    def lock_path(self) -> Path:
        return self.resolve(self.lock_file)

    @property
    def log_path(self) -> Path:
        return self.resolve(self.log_file)


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic validation error as one line per problem."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "settings"
        message = item.get("msg", "invalid value").removeprefix("Value error, ")
        lines.append(f"{location}: {message}")
    return "\n".join(lines)


def load_settings(**overrides: Any) -> ChronosSettings:
    """
    Build validated settings from explicit values, environment and defaults.

    Explicit values that are ``None`` are treated as "not given" so that CLI
    flags left unset fall back to the environment.

    Raises:
        ConfigurationError: if any value or cross-field rule is invalid.

    Example:
        >>> settings = load_settings(repo_path="/tmp/repo", daily_limit=20)
        >>> settings.daily_limit
        20
    """
    values: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
    try:
        return ChronosSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e)) from e


def fallback_log_path(**overrides: Any) -> Path:
    """
    Best-effort runtime log location for reporting invalid settings.

    Uses explicit values, then ``CHRONOS_`` environment variables, then the
    defaults, without validating anything else.
    """
    def pick(name: str, default: Path) -> Path:
        value = overrides.get(name)
        if value is None:
            value = os.environ.get(f"CHRONOS_{name.upper()}")
        return Path(value).expanduser() if value else default

    log_file = pick("log_file", ChronosSettings.model_fields["log_file"].default)
    if log_file.is_absolute():
        return log_file
    return pick("repo_path", Path.cwd()).resolve() / log_file


def export_config(settings: ChronosSettings) -> Dict[str, Any]:
    """Export configuration for display."""
    return {
        "repository": str(settings.repo_path),
        "branch": settings.branch,
        "remote": settings.remote if settings.push_enabled else "disabled",
        "timezone": settings.timezone,
        "commits_per_burst": f"{settings.min_commits}-{settings.max_commits}",
        "daily_limit": settings.daily_limit,
        "schedule": f"{settings.schedule_start:02d}:00-{settings.schedule_end:02d}:00",
        "weekends": "enabled" if settings.enable_weekends else "disabled",
        "commit_delay": f"{settings.commit_delay_min:g}-{settings.commit_delay_max:g}s",
        "retries": f"{settings.retry_attempts} x {settings.retry_delay:g}s",
    }
