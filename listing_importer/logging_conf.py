"""Structured logging for the importer: JSON lines on the console and in rotating files."""

from __future__ import annotations

import logging.config
import os
from collections import deque
from pathlib import Path
from typing import Any

import structlog

LOGGER_NAME = "listing_importer"
IMPORTER_LOG = "importer.log"
ERROR_LOG = "error.log"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3

_configured = False


def log_dir() -> Path:
    """``$LISTING_IMPORTER_HOME/logs`` when set, else ``logs/`` next to the package."""

    home = os.environ.get("LISTING_IMPORTER_HOME")
    root = Path(home).expanduser().resolve() if home else Path(__file__).resolve().parents[1]
    return root / "logs"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "filename": str(path),
        "maxBytes": _MAX_LOG_BYTES,
        "backupCount": _LOG_BACKUPS,
        "formatter": "json",
        "encoding": "utf-8",
    }


def _logging_dict(directory: Path, level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s",
            }
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "importer_file": _file_handler(directory / IMPORTER_LOG, "INFO"),
            "error_file": _file_handler(directory / ERROR_LOG, "ERROR"),
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["console", "importer_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger."""

    global _configured
    if not _configured:
        directory = log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(_logging_dict(directory, "DEBUG" if verbose else "INFO"))
        # structlog 只负责结构化事件，JSON 渲染交给 stdlib handler
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(LOGGER_NAME)


def job_logger(job_id: str, **context: object) -> structlog.BoundLogger:
    """Logger for one import job; every event carries ``job_id`` and the run parameters."""

    configure_logging()
    return structlog.get_logger(f"{LOGGER_NAME}.job").bind(job_id=job_id, **context)


def default_log_files() -> list[Path]:
    directory = log_dir()
    return [directory / IMPORTER_LOG, directory / ERROR_LOG]


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=max(line_count, 0)))


__all__ = ["configure_logging", "default_log_files", "job_logger", "log_dir", "tail_log"]
