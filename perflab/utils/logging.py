"""
Logging setup for the Mongo performance lab.

The CLI, orchestrator, strategies and plan analyzer all log through the root
logger. ``configure_logging`` installs a console handler and, for benchmark
runs, a second handler writing the same lines into a per-run results file
(``logs/<strategy>_results.txt`` or ``logs/benchmark_results.txt``). Lines are
human readable by default or JSON objects when ``LOG_JSON`` is set.

Usage:
    from perflab.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", log_file=results_log_path("logs", "cursor_stream"))
    log = get_logger(__name__)
    log.info("message", extra={"records": 1000})
"""

from __future__ import annotations

import json
import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    )
    # Older call sites pass a single nested dict as extra={"extra": {...}}.
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; extra= fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def results_log_path(log_dir: str | Path, label: str) -> Path:
    """Where a benchmark run labelled ``label`` mirrors its log lines."""
    return Path(log_dir) / f"{label}_results.txt"


def _handler_configs(
    level: str, formatter: str, log_file: Optional[Path]
) -> Dict[str, Dict[str, Any]]:
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "formatter": formatter, "level": level},
    }
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["results_file"] = {
            "class": "logging.FileHandler",
            "filename": str(log_file),
            "mode": "w",
            "encoding": "utf-8",
            "formatter": formatter,
            "level": level,
        }
    return handlers


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str | Path] = None,
) -> None:
    """
    Configure root logging for a CLI invocation.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Emit JSON objects instead of the human-readable console format.
    log_file : str | Path | None
        Also write every line to this file, truncating it first.
    """
    handlers = _handler_configs(
        level, "json" if json_logs else "console", Path(log_file) if log_file else None
    )
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
                "json": {"()": JsonFormatter},
            },
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": level},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "results_log_path"]
