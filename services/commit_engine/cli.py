#!/usr/bin/env python3
"""
Git Chronos CLI

Command-line interface for the Commit Engine. Every configuration value can
be given as a flag, through ``CHRONOS_*`` environment variables, or through
the interactive wizard.

Examples:
    git-chronos --repo /path/to/repo                    # Run the scheduler
    git-chronos --repo . --daily-limit 5 --once         # Run a single tick
    git-chronos --interactive                           # Prompt for settings
    git-chronos --status                                # Show quota and lock state
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from config.settings import ChronosSettings, export_config, fallback_log_path, load_settings
from services.commit_engine import __version__
from services.commit_engine.lock import InstanceLock
from services.commit_engine.main import ChronosEngine
from services.commit_engine.tracker import CommitTracker
from shared.exceptions import ConfigurationError
from shared.logging_setup import configure_logging, console
from shared.models import CommitTrackerRecord, ExitCode

logger = logging.getLogger(__name__)


def _ask_number(question: str, default: Any, cast: Callable[[str], Any], valid: Callable[[Any], bool] = lambda v: True):
    """Prompt for a number, keeping ``default`` when the answer is invalid."""
    answer = Prompt.ask(f"[cyan]{question}[/cyan]", default=str(default), console=console)
    try:
        value = cast(answer)
    except ValueError:
        value = None
    if value is None or not valid(value):
        console.print(f"[yellow]Invalid value '{answer}', using {default}[/yellow]")
        return default
    return value


def prompt_for_settings(current: ChronosSettings) -> Dict[str, Any]:
    """Step-by-step configuration wizard; ENTER keeps the current value."""
    console.print(Panel(
        Text("Enter values or press ENTER for defaults", style="green"),
        title="Git Chronos Configuration",
        border_style="green",
    ))

    def hour(v):
        return 0 <= v <= 23

    return {
        "repo_path": Prompt.ask("[cyan]Repository Path[/cyan]", default=str(current.repo_path), console=console),
        "branch": Prompt.ask("[cyan]Git Branch[/cyan]", default=current.branch, console=console),
        "min_commits": _ask_number("Minimum Random Commits", current.min_commits, int),
        "max_commits": _ask_number("Maximum Random Commits", current.max_commits, int),
        "daily_limit": _ask_number("Daily Commit Limit", current.daily_limit, int),
        "schedule_start": _ask_number("Schedule Start Hour (0-23)", current.schedule_start, int, hour),
        "schedule_end": _ask_number("Schedule End Hour (0-23)", current.schedule_end, int, hour),
        "enable_weekends": Confirm.ask(
            "[cyan]Enable Weekend Mode[/cyan]", default=current.enable_weekends, console=console
        ),
        "timezone": Prompt.ask("[cyan]Timezone[/cyan]", default=current.timezone, console=console),
        "commit_delay_min": _ask_number("Minimum Commit Delay (s)", current.commit_delay_min, float),
        "commit_delay_max": _ask_number("Maximum Commit Delay (s)", current.commit_delay_max, float),
    }


def display_config(settings: ChronosSettings) -> None:
    table = Table(title="Git Chronos", show_header=False, border_style="green")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for key, value in export_config(settings).items():
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)


def describe_lock(lock: InstanceLock) -> str:
    try:
        owner = lock.read_owner()
    except OSError as e:
        return f"[red]unreadable: {escape(str(e))}[/red]"
    if owner is None:
        return "[green]free[/green]"
    if lock.owner_alive(owner):
        return f"[yellow]held by PID {owner}[/yellow]"
    return f"[red]stale (PID {owner})[/red]"


def display_status(settings: ChronosSettings) -> None:
    """Show tracker and lock state without modifying either."""
    tracker = CommitTracker(settings.tracker_path, settings.zone)
    try:
        record = tracker.peek()
        tracker_state = "ok" if record is not None else "not created yet"
    except (OSError, ValueError) as e:
        record = None
        tracker_state = f"[red]unreadable: {e}[/red]"
    tracker.record = record or CommitTrackerRecord(commit_count=0)
    remaining = tracker.remaining_today(settings.daily_limit)

    lock_state = describe_lock(InstanceLock(settings.lock_path))

    table = Table(title="Git Chronos Status", show_header=True, header_style="bold magenta")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Repository", str(settings.repo_path))
    table.add_row("Tracker", f"{settings.tracker_path} ({tracker_state})")
    table.add_row("Commits Today", str(tracker.record.commit_count))
    table.add_row("Remaining Today", f"{remaining}/{settings.daily_limit}")
    table.add_row("Last Run", tracker.record.last_run_date.astimezone(settings.zone).strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("Lock", lock_state)
    console.print(table)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--repo", "repo_path", type=click.Path(file_okay=False, path_type=Path), help="Path to Git repository (default: current directory)")
@click.option("--branch", help="Branch to commit to (default: main)")
@click.option("--remote", help="Remote to push to (default: origin)")
@click.option("--push/--no-push", "push_enabled", default=None, help="Push after each commit")
@click.option("--timezone", help="IANA timezone (default: America/New_York)")
@click.option("--min-commits", type=int, help="Minimum commits per burst")
@click.option("--max-commits", type=int, help="Maximum commits per burst")
@click.option("--daily-limit", type=int, help="Absolute daily commit limit")
@click.option("--commit-delay-min", type=float, help="Minimum seconds between commits")
@click.option("--commit-delay-max", type=float, help="Maximum seconds between commits")
@click.option("--schedule-start", type=int, help="First working hour (0-23)")
@click.option("--schedule-end", type=int, help="End of working window, exclusive (0-23)")
@click.option("--enable-weekends/--disable-weekends", "enable_weekends", default=None, help="Commit on weekends")
@click.option("--target-file", type=click.Path(path_type=Path), help="File modified by each commit")
@click.option("--tracker-file", "commit_tracker_file", type=click.Path(path_type=Path), help="Commit tracker JSON file")
@click.option("--lock-file", type=click.Path(path_type=Path), help="Single-instance lock file")
@click.option("--log-file", type=click.Path(path_type=Path), help="Runtime log file")
@click.option("--retry-attempts", type=int, help="Attempts per commit for transient Git failures")
@click.option("--retry-delay", type=float, help="Seconds between attempts")
@click.option("--commit-message", help="Commit message")
@click.option("--interactive", "-i", is_flag=True, help="Prompt for settings before starting")
@click.option("--once", is_flag=True, help="Run a single tick and exit")
@click.option("--status", is_flag=True, help="Show tracker and lock status and exit")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def chronos(interactive: bool, once: bool, status: bool, verbose: bool, **options: Optional[Any]):
    """Git Chronos: scheduled, quota-bounded automatic commits."""
    if verbose:
        options["log_level"] = "DEBUG"

    try:
        settings = load_settings(**options)
        if interactive:
            answers = prompt_for_settings(settings)
            settings = load_settings(**{**options, **answers})
    except ConfigurationError as e:
        log_path = fallback_log_path(**options)
        configure_logging(log_path if log_path.parent.is_dir() else None)
        logger.error(f"Invalid configuration:\n{e}")
        sys.exit(int(ExitCode.CONFIGURATION))

    if status:
        display_status(settings)
        return

    configure_logging(settings.log_path, settings.log_level)
    display_config(settings)
    console.print("[green]Git Chronos: Starting Chronos Sequence[/green]")

    exit_code = asyncio.run(ChronosEngine(settings).run(once=once))

    console.print("[green]Git Chronos: Chronos Flow Terminated[/green]")
    sys.exit(int(exit_code))


if __name__ == "__main__":
    chronos()
