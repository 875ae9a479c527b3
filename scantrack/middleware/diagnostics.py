"""
Startup diagnostics, run once from create_app().

Warns when the sync interval is too coarse for the scan-log retention
window, then (outside tests) probes the database and logs a settings summary.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect

from scantrack.models import db
from scantrack.services.retention_service import check_retention_window

logger = logging.getLogger(__name__)


def _database_kind(uri: str) -> str:
    if uri.startswith("postgresql"):
        return "PostgreSQL"
    if uri.startswith("sqlite"):
        return "SQLite"
    return uri.split(":", 1)[0] or "unknown"


def _probe_database(issues: list[str]) -> tuple[str, str]:
    """Return ``(state, table_count)``; append problems to ``issues``."""
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        issues.append(f"Database unreachable: {exc}")
        return f"FAILED ({exc})", "?"

    tables = sa_inspect(db.engine).get_table_names()
    if not tables:
        issues.append("Database has no tables, run 'flask db upgrade'")
    return "ok", str(len(tables))


def run_startup_diagnostics(app: Flask) -> list[str]:
    """Check configuration and connectivity. Returns the list of issues."""
    issues: list[str] = []

    interval = int(app.config.get("SYNC_INTERVAL_SECONDS", 120))
    retention_days = int(app.config.get("TRACKING_RETENTION_DAYS", 10))
    if not check_retention_window(interval, retention_days):
        issues.append(
            f"Sync interval {interval}s vs {retention_days}-day retention: "
            "scans may expire before they are reconciled"
        )

    if app.config.get("TESTING"):
        return issues

    with app.app_context():
        db_state, table_count = _probe_database(issues)

    summary = {
        "python": ".".join(str(v) for v in sys.version_info[:3]),
        "debug": app.debug,
        "database": f"{_database_kind(str(app.config.get('SQLALCHEMY_DATABASE_URI', '')))} ({db_state})",
        "tables": table_count,
        "scheduler": "enabled" if app.config.get("SCHEDULER_ENABLED") else "disabled",
        "sync_interval": f"{interval}s",
        "retention": f"{retention_days} days",
    }
    logger.info("ScanTrack startup: %s", ", ".join(f"{k}={v}" for k, v in summary.items()))

    for issue in issues:
        logger.warning("Startup issue: %s", issue)
    if not issues:
        logger.info("Startup checks passed")
    return issues
