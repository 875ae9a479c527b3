"""
ScanTrack — Production Scan Reconciliation
Scheduled Jobs.

Jobs:
    - production_sync: reconcile active work orders against the scan log
    - tracking_retention: delete scan-log days past the retention window
"""

from __future__ import annotations

import logging
from typing import Any

from scantrack.services.production_sync import sync_orchestrator
from scantrack.services.retention_service import sweep_tracking_data
from scantrack.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Production Sync
# ═══════════════════════════════════════════════════════════════════════════

@register_job("production_sync")
def sync_production(app, trigger="manual") -> dict[str, Any]:
    """Reconcile scan events into work order completion snapshots."""
    return sync_orchestrator.run_tick(trigger=trigger)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Tracking Data Retention
# ═══════════════════════════════════════════════════════════════════════════

@register_job("tracking_retention")
def clean_tracking_data(app, trigger="manual") -> dict[str, Any]:
    """Delete production tracking days older than the retention window."""
    return sweep_tracking_data(retention_days=int(app.config.get("TRACKING_RETENTION_DAYS", 10)))
