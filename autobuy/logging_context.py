"""Logging setup with a per-run identifier on every record."""

import logging
import uuid
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Context variable for the current buy run (safe across asyncio tasks)
_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(run_id)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_run_id() -> Optional[str]:
    """Get the current run ID."""
    return _run_id.get()


def set_run_id(run_id: Optional[str] = None) -> str:
    """
    Set the run ID for the current context.

    Args:
        run_id: Optional run ID. If None, generates a short random one.

    Returns:
        The run ID (newly generated or provided)
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:8]
    _run_id.set(run_id)
    return run_id


def clear_run_id():
    """Clear the current run ID."""
    _run_id.set(None)


class RunIDFilter(logging.Filter):
    """Logging filter that adds the run ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id() or "-"
        return True


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """
    Configure the root logger with a console handler and an optional rotating file handler.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
        log_file: Path of the log file, None to log to the console only
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RunIDFilter())
    handlers: list[logging.Handler] = [console_handler]

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        # 1MB per file, keep 3 backups
        file_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RunIDFilter())
        handlers.append(file_handler)

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=handlers, force=True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
