"""
ScanTrack — Production Scan Reconciliation
Retention Sweeper.

Deletes scan-log production days older than the retention window,
whether or not they were ever reconciled. The sync interval therefore
has to be much shorter than the window; ``check_retention_window`` is
called at startup and warns when it is not.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from flask import current_app

from scantrack.models import db
from scantrack.models.completion import InvalidScanFingerprint
from scantrack.services import scan_store

logger = logging.getLogger(__name__)

# Syncs that must fit into one retention window before startup stops warning
MIN_SYNCS_PER_RETENTION_WINDOW = 10


def retention_cutoff(today: date, retention_days: int) -> date:
    """Production days strictly before this date are swept."""
    return today - timedelta(days=retention_days)


def sweep_tracking_data(retention_days: int | None = None, today: date | None = None) -> dict:
    """Delete production days older than ``retention_days`` and their invalid-scan fingerprints.

    Commits on success, rolls back and re-raises on failure.
    """
    if retention_days is None:
        retention_days = int(current_app.config.get("TRACKING_RETENTION_DAYS", 10))
    today = today or date.today()
    cutoff = retention_cutoff(today, retention_days)
    cutoff_at = datetime.combine(cutoff, time.min, tzinfo=timezone.utc)

    try:
        counts = scan_store.delete_days_before(cutoff)
        counts["invalid_scan_fingerprints"] = (
            InvalidScanFingerprint.query
            .filter(InvalidScanFingerprint.scanned_at < cutoff_at)
            .delete(synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Tracking data cleanup failed (cutoff %s)", cutoff)
        raise

    counts["cutoff"] = cutoff.isoformat()
    counts["retention_days"] = retention_days
    logger.info(
        "Cleaned up tracking data before %s: %d production days, %d scans, %d fingerprints",
        cutoff, counts["production_days"], counts["scans"], counts["invalid_scan_fingerprints"],
    )
    return counts


def check_retention_window(sync_interval_seconds: int, retention_days: int) -> bool:
    """Return False (and log a warning) when syncs are too rare for the retention window."""
    window_seconds = retention_days * 86400
    if retention_days <= 0 or sync_interval_seconds * MIN_SYNCS_PER_RETENTION_WINDOW > window_seconds:
        logger.warning(
            "Sync interval %ss is not much shorter than the %d-day tracking retention window; "
            "scans may be deleted before they are reconciled",
            sync_interval_seconds, retention_days,
        )
        return False
    return True
