"""structlog over stdlib logging, with JSON log files under ``<home>/logs``."""

from __future__ import annotations

import logging
import logging.config
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import structlog

ROOT_LOGGER = "ticker_news"
SOURCE_LOGGER_PREFIX = f"{ROOT_LOGGER}.source"
JSON_FORMATTER = "pythonjsonlogger.json.JsonFormatter"

_configured = False


@dataclass(frozen=True)
class LogPaths:
    base: Path

    @property
    def service(self) -> Path:
        return self.base / "service.log"

    @property
    def errors(self) -> Path:
        return self.base / "error.log"

    @property
    def sources(self) -> Path:
        return self.base / "sources"

    def source(self, source_name: str) -> Path:
        return self.sources / f"{source_name}.log"

    def ensure(self) -> None:
        self.sources.mkdir(parents=True, exist_ok=True)
        for path in (self.service, self.errors):
            path.touch(exist_ok=True)


def log_dir() -> Path:
    home = os.environ.get("TICKER_NEWS_HOME")
    root = Path(home).expanduser() if home else Path.cwd()
    return root.resolve() / "logs"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def _dict_config(paths: LogPaths, verbose: bool) -> dict[str, Any]:
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JSON_FORMATTER,
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "rename_fields": {"levelname": "level", "name": "logger"},
            }
        },
        "handlers": {
            # the console stays quiet unless --verbose; the files keep everything
            "console": {
                "class": "logging.StreamHandler",
                "level": level if verbose else "WARNING",
                "formatter": "json",
            },
            "service_file": _file_handler(paths.service, "INFO"),
            "error_file": _file_handler(paths.errors, "ERROR"),
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "service_file", "error_file"],
                "level": level,
                "propagate": False,
            },
            "apscheduler": {
                "handlers": ["service_file"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger."""

    global _configured

    if not _configured:
        paths = LogPaths(log_dir())
        paths.ensure()
        logging.config.dictConfig(_dict_config(paths, verbose))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(ROOT_LOGGER)


def source_logger(source_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``source=<name>`` that also writes ``logs/sources/<name>.log``."""

    configure_logging(verbose)
    path = LogPaths(log_dir()).source(source_name)
    path.parent.mkdir(parents=True, exist_ok=True)

    name = f"{SOURCE_LOGGER_PREFIX}.{source_name}"
    std_logger = logging.getLogger(name)
    attached = {getattr(handler, "baseFilename", None) for handler in std_logger.handlers}
    if str(path) not in attached:
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.INFO)
        parent_handlers = logging.getLogger(ROOT_LOGGER).handlers
        if parent_handlers:
            handler.setFormatter(parent_handlers[0].formatter)
        std_logger.addHandler(handler)
    return structlog.get_logger(name).bind(source=source_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


def available_source_logs() -> Iterable[Path]:
    sources = LogPaths(log_dir()).sources
    if not sources.exists():
        return []
    return sorted(sources.glob("*.log"))


__all__ = [
    "LogPaths",
    "available_source_logs",
    "configure_logging",
    "log_dir",
    "source_logger",
    "tail_log",
]
