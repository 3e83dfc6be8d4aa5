"""
Structured Logging - Per-subsystem logging with optional JSON output.

Provides contextual logging with subsystem tags and a request correlation id.
Modules that do not need subsystem tagging use ``logging.getLogger(__name__)``.
"""

import json
import logging
import sys
from contextvars import ContextVar
from enum import Enum
from typing import Any, Dict

# Context variable for request correlation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class Subsystem(str, Enum):
    API = "api"
    GENERATOR = "generator"
    HISTORY = "history"
    KNOWLEDGE = "knowledge"
    BATCH = "batch"
    VOICE = "voice"
    INBOUND = "inbound"
    NOTIFY = "notify"


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "subsystem": getattr(record, "subsystem", "general"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        req_id = request_id_var.get("")
        if req_id:
            log_entry["request_id"] = req_id

        extra = getattr(record, "extra_data", None)
        if extra:
            log_entry["data"] = extra

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(log_entry, default=str)


class SubsystemLogger:
    """Logger wrapper that adds subsystem context."""

    def __init__(self, subsystem: Subsystem, logger: logging.Logger):
        self._subsystem = subsystem
        self._logger = logger

    def _log(self, level: int, msg: str, extra_data: Any = None, **kwargs):
        extra = {"subsystem": self._subsystem.value}
        if extra_data:
            extra["extra_data"] = extra_data
        self._logger.log(level, msg, extra=extra, **kwargs)

    def debug(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.DEBUG, msg, data, **kwargs)

    def info(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.INFO, msg, data, **kwargs)

    def warning(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.WARNING, msg, data, **kwargs)

    def error(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.ERROR, msg, data, **kwargs)


# ── Logger Registry ──
_loggers: Dict[str, SubsystemLogger] = {}
_configured = False


def get_subsystem_logger(subsystem: Subsystem) -> SubsystemLogger:
    """Get a structured logger for a subsystem."""
    key = subsystem.value
    if key not in _loggers:
        logger = logging.getLogger(f"workmate.{key}")
        _loggers[key] = SubsystemLogger(subsystem, logger)
    return _loggers[key]


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Install a single stream handler on the ``workmate`` logger tree."""
    global _configured
    root = logging.getLogger("workmate")
    root.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
    root.addHandler(handler)
    _configured = True
