"""Console output for the work item import.

Rich logging with the custom NOTICE and SUCCESS levels, plus the live progress
view of an import run.
"""

import logging
import threading
from collections import Counter, deque
from pathlib import Path
from typing import Any, Protocol, cast

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

LOGGER_NAME = "wi_import"
NOTICE = 21
SUCCESS = 25


# Define Protocol for extended Logger with success and notice methods
class ExtendedLogger(Protocol):
    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def success(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def notice(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None: ...


# Create a custom theme for logging
LOGGING_THEME = Theme(
    {
        "logging.level.debug": "dim",
        "logging.level.info": "blue",
        "logging.level.notice": "cyan",
        "logging.level.warning": "bold yellow",
        "logging.level.error": "bold red",
        "logging.level.critical": "bold red on white",
        "logging.level.success": "bold green",
    }
)

# Global console instance with theme
console = Console(theme=LOGGING_THEME)

# Set up a rich handler for logging
rich_handler = RichHandler(
    console=console,
    rich_tracebacks=True,
    tracebacks_show_locals=False,
    markup=False,
    show_time=True,
    show_level=True,
    enable_link_path=True,
    log_time_format="[%X.%f]",
)


def _success(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(SUCCESS):
        self._log(SUCCESS, message, args, stacklevel=2, **kwargs)


def _notice(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(NOTICE):
        self._log(NOTICE, message, args, stacklevel=2, **kwargs)


# Custom levels are registered at import so any module-level logger can use them
logging.addLevelName(SUCCESS, "SUCCESS")
logging.addLevelName(NOTICE, "NOTICE")
setattr(logging.Logger, "success", _success)
setattr(logging.Logger, "notice", _notice)


_LEVELS = {"NOTICE": NOTICE, "SUCCESS": SUCCESS}

_FILE_FORMAT = "%(asctime)s.%(msecs)03d - %(threadName)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> ExtendedLogger:
    """Route all logging through the rich console and, optionally, a log file.

    Args:
        level: Logging level name, including the custom NOTICE and SUCCESS levels
        log_file: Optional path to a log file

    Returns:
        The import logger

    """
    name = level.upper()
    numeric_level = _LEVELS.get(name) or getattr(logging, name, logging.INFO)

    handlers: list[logging.Handler] = [rich_handler]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, format="%(message)s", datefmt="[%X.%f]", handlers=handlers, force=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.debug("Logging at %s%s", name, f", copied to {log_file}" if log_file else "")
    return cast(ExtendedLogger, logger)


class ReplayProgress:
    """Live view of an import run.

    Shows a bar over all revisions, a tally of revision outcomes and the last
    few finished work items. Safe to update from worker threads.
    """

    def __init__(self, total_revisions: int, *, recent: int = 5, enabled: bool = True) -> None:
        self.enabled = enabled
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self.task_id = self.progress.add_task("Replaying revisions", total=total_revisions)
        self.outcomes: Counter[str] = Counter()
        self.finished: deque[str] = deque(maxlen=recent)
        self._lock = threading.Lock()
        self._live: Live | None = None

    def __enter__(self) -> "ReplayProgress":
        if self.enabled:
            self._live = Live(self._render(), console=console, refresh_per_second=4)
            self._live.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._live:
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None

    def revision_done(self, outcome: str | None = None) -> None:
        """Advance by one revision; ``outcome`` is None for revisions passed over."""
        with self._lock:
            if outcome is not None:
                self.outcomes[outcome] += 1
            self.progress.advance(self.task_id)
            self._refresh()

    def item_done(self, summary: str) -> None:
        with self._lock:
            self.finished.append(summary)
            self._refresh()

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._render())

    def _render(self) -> Panel:
        body = Table.grid(padding=(0, 1))
        body.add_column()
        body.add_row(self.progress)
        if self.outcomes:
            tally = ", ".join(f"{name} {count}" for name, count in sorted(self.outcomes.items()))
            body.add_row(Text(tally, style="dim"))
        for summary in self.finished:
            body.add_row(f"  - {summary}")
        return Panel.fit(body, title="Work item import", border_style="blue")
