"""
Health probes.

    GET /api/v1/health/ready  — process is up (load balancer probe)
    GET /api/v1/health/live   — database, production sync and scheduler state

``/live`` answers 503 only when the database is unreachable; a stale sync
loop is reported but does not fail the probe.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from scantrack.models import db
from scantrack.services.production_sync import sync_orchestrator
from scantrack.services.scheduler_service import SchedulerService
from scantrack.utils.helpers import parse_datetime, utcnow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

# Ticks missed before the sync loop is reported stale
STALE_AFTER_INTERVALS = 3


def _database_check() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        logger.error("Liveness probe: database unreachable: %s", exc)
        db.session.rollback()
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _sync_check(interval: int, scheduler_running: bool) -> dict:
    state = sync_orchestrator.status()
    last_finished = parse_datetime(state["last_finished_at"])
    # Only a running scheduler is expected to keep ticking
    lag = (utcnow() - last_finished).total_seconds() if last_finished else None
    stale = scheduler_running and lag is not None and lag > interval * STALE_AFTER_INTERVALS
    return {
        "status": "stale" if stale else "ok",
        "running": state["running"],
        "tick_count": state["tick_count"],
        "skipped_count": state["skipped_count"],
        "last_finished_at": state["last_finished_at"],
        "last_errors": (state["last_summary"] or {}).get("errors", 0),
        "interval_seconds": interval,
    }


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    scheduler_running = SchedulerService.is_running()
    interval = int(current_app.config.get("SYNC_INTERVAL_SECONDS", 120))

    checks = {
        "database": _database_check(),
        "production_sync": _sync_check(interval, scheduler_running),
        "scheduler": {
            "status": "running" if scheduler_running else "stopped",
            "enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        },
        "app": {
            "name": "ScanTrack",
            "debug": current_app.debug,
            "testing": current_app.testing,
        },
    }

    db_ok = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if db_ok else "degraded",
        "checks": checks,
    }), (200 if db_ok else 503)
