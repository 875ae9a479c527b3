"""
ScanTrack — Production Scan Reconciliation
Sync Orchestrator.

One tick reconciles every active work order against the scan log:

    scans_for_key → validate_scans → infer_completion + analyze → apply_sync_result

Ticks are single-flight. A tick that starts while another is running
returns ``{"status": "skipped"}`` at once; nothing is queued. The next
tick picks up whatever was missed because every pass is idempotent.

Work orders are processed one after another, each in its own
transaction, so one failing order never blocks the rest.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime

from scantrack.models import db
from scantrack.services.completion_engine import infer_completion
from scantrack.services.efficiency_analyzer import analyze
from scantrack.services.scan_store import scans_for_key
from scantrack.services.scan_validator import validate_scans
from scantrack.services.snapshot_writer import WriteOutcome, apply_sync_result
from scantrack.services.work_order_store import build_plan, get_work_order, list_sync_candidates
from scantrack.utils.helpers import isoformat, utcnow

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs sync ticks; holds the single-flight guard and the last tick summary."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.tick_count = 0
        self.skipped_count = 0
        self.last_summary: dict | None = None
        self.last_started_at: datetime | None = None
        self.last_finished_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_tick(self, trigger: str = "interval") -> dict:
        """Run one tick, or return ``{"status": "skipped"}`` when one is already running."""
        if not self._lock.acquire(blocking=False):
            self.skipped_count += 1
            logger.info("Sync tick skipped: previous tick still running", extra={"trigger": trigger})
            return {"status": "skipped", "trigger": trigger, "reason": "sync already running"}
        try:
            return self._run(trigger)
        finally:
            self._lock.release()

    def _run(self, trigger: str) -> dict:
        self.tick_count += 1
        tick = self.tick_count
        started = time.monotonic()
        now = utcnow()
        self.last_started_at = now

        summary = {
            "status": "completed",
            "tick": tick,
            "trigger": trigger,
            "started_at": isoformat(now),
            "work_orders": 0,
            "updated": 0,
            "unchanged": 0,
            "no_scans": 0,
            "errors": 0,
            "invalid_scans": 0,
            "failed_work_orders": [],
        }

        candidate_ids = [wo.id for wo in list_sync_candidates()]
        summary["work_orders"] = len(candidate_ids)
        logger.debug("Sync tick #%d: %d active work orders", tick, len(candidate_ids),
                     extra={"tick": tick, "trigger": trigger})

        for work_order_id in candidate_ids:
            try:
                outcome = self.process_work_order(work_order_id, now)
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                summary["errors"] += 1
                summary["failed_work_orders"].append({"work_order_id": work_order_id, "error": str(exc)})
                logger.exception("Sync failed for work order %s", work_order_id,
                                 extra={"tick": tick, "work_order_id": work_order_id})
                continue
            summary[outcome.status] += 1
            summary["invalid_scans"] += outcome.new_invalid

        duration_ms = int((time.monotonic() - started) * 1000)
        summary["duration_ms"] = duration_ms
        self.last_summary = summary
        self.last_finished_at = utcnow()

        level = logging.WARNING if summary["errors"] else logging.INFO
        logger.log(
            level,
            "Sync tick #%d done in %dms: %d work orders, %d updated, %d errors, %d new invalid scans",
            tick, duration_ms, summary["work_orders"], summary["updated"],
            summary["errors"], summary["invalid_scans"],
            extra={"tick": tick, "trigger": trigger, "duration_ms": duration_ms},
        )
        return summary

    def process_work_order(self, work_order_id: int, now: datetime) -> WriteOutcome:
        """Run the full pipeline for one work order. Caller commits."""
        work_order = get_work_order(work_order_id)
        plan = build_plan(work_order)
        records = scans_for_key(plan.barcode_key)
        validation = validate_scans(records, plan)
        completion = infer_completion(validation, plan)
        analysis = analyze(validation, plan)
        return apply_sync_result(work_order, validation, completion, analysis, now)

    def status(self) -> dict:
        return {
            "running": self.is_running,
            "tick_count": self.tick_count,
            "skipped_count": self.skipped_count,
            "last_started_at": isoformat(self.last_started_at),
            "last_finished_at": isoformat(self.last_finished_at),
            "last_summary": self.last_summary,
        }


sync_orchestrator = SyncOrchestrator()
