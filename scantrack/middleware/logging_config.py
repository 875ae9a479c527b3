"""
Structured logging configuration.

Two output formats share one stderr handler on the root logger:

- JSON: one object per line, for the log shipper (default outside DEBUG)
- readable: colored single-line records for a terminal

LOG_LEVEL and LOG_FORMAT (``json`` / ``readable``) override the defaults.
Sync ticks and background jobs pass ``extra={...}`` context; the fields
listed in CONTEXT_FIELDS are lifted onto the record output.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    # request
    "method", "path", "status", "duration_ms", "remote_addr", "request_id",
    # background jobs / sync
    "job_name", "tick", "trigger", "work_order_id", "work_order_number",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored ``HH:MM:SS LEVEL logger [ctx]: message`` lines."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    _SHORT = {"tick": "tick", "work_order_id": "wo", "job_name": "job", "request_id": "req"}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        ctx = " ".join(
            f"{short}={getattr(record, key)}"
            for key, short in self._SHORT.items()
            if getattr(record, key, None) is not None
        )
        ctx = f" [{ctx}]" if ctx else ""
        duration = getattr(record, "duration_ms", None)
        took = f" ({duration:.0f}ms)" if duration is not None else ""
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}{ctx}: {record.getMessage()}{took}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the stderr handler on the root logger for ``app``'s environment."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG"))
    level = getattr(logging, level_name.upper(), logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "json" if production else "readable").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test module; avoid stacking handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
