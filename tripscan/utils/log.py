"""
Logging utilities for the tripscan toolkit.

Provides unified structured logging:
- pretty console output via Rich
- structured (JSON lines) file output to `ingest.log` when running `tripscan ingest`
"""

import logging
import sys
import json
from pathlib import Path

from rich.logging import RichHandler


class JSONFormatter(logging.Formatter):
    """
    Formatter that serializes log records to JSON.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level":     record.levelname,
            "logger":    record.name,
            "thread":    record.threadName,
            "message":   record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _command(argv: list[str]) -> str | None:
    """
    First positional argument of the command line, skipping global options.
    """
    return next((arg for arg in argv[1:] if not arg.startswith("-")), None)


def get_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """
    Return a configured logger for the given name.

    Attaches:
    - a RichHandler for console output
    - when the command is 'ingest', a FileHandler writing JSON logs to {cwd}/ingest.log

    Parameters
    ----------
    name
        Logger name (typically __name__).
    level
        Log level (int or string), defaults to INFO.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        # Console via Rich
        console_handler = RichHandler(rich_tracebacks=True)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        # File output for `tripscan ingest`, as structured JSON
        if _command(sys.argv) == "ingest":
            log_path = Path.cwd() / "ingest.log"
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    return logger


def set_level(level: int | str) -> None:
    """
    Change the level of every tripscan logger created so far (used by `--verbose`).
    """
    for name, obj in logging.Logger.manager.loggerDict.items():
        if not name.startswith("tripscan") or not isinstance(obj, logging.Logger):
            continue
        obj.setLevel(level)
        for handler in obj.handlers:
            handler.setLevel(level)
