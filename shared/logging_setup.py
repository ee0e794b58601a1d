"""
Logging configuration for Git Chronos.

Console output goes through rich; the runtime log file receives plain lines
of the form ``[YYYY-MM-DD HH:MM:SS] LEVEL: message`` with UTC timestamps and
ANSI styling removed.
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
SINK_LEVEL_NAMES = {"DEBUG": "INFO", "INFO": "INFO", "WARNING": "WARN", "ERROR": "ERROR", "CRITICAL": "ERROR"}

# Shared Rich console
console = Console()

logger = logging.getLogger(__name__)


class LogSinkFormatter(logging.Formatter):
    """Formatter for the append-only runtime log file."""

    converter = time.gmtime

    def __init__(self):
        super().__init__("[%(asctime)s] %(sink_level)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        record.sink_level = SINK_LEVEL_NAMES.get(record.levelname, "INFO")
        text = ANSI_ESCAPE.sub("", super().format(record))
        # one record per line, tracebacks included
        return " | ".join(line.strip() for line in text.splitlines() if line.strip())


def _owned_handlers(root: logging.Logger):
    return [h for h in root.handlers if getattr(h, "_chronos_handler", False)]


def configure_logging(log_file: Optional[Path] = None, level: str = "INFO") -> None:
    """
    Configure console and file logging.

    Replaces handlers installed by a previous call. A log file that cannot be
    opened is reported and the process continues with console logging only.
    """
    root = logging.getLogger()
    for handler in _owned_handlers(root):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    console_handler = RichHandler(console=console, show_path=False, markup=False)
    console_handler._chronos_handler = True
    root.addHandler(console_handler)

    if log_file is None:
        return

    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as e:
        logger.warning(f"Log file {log_file} is not writable ({e}); logging to console only")
        return

    file_handler.setFormatter(LogSinkFormatter())
    file_handler._chronos_handler = True
    root.addHandler(file_handler)
