"""
ScanTrack — Production Scan Reconciliation
Completion Snapshot Writer.

The only code that mutates CompletionSnapshot rows. Two merge rules apply:

    replace_recomputed  operation/operator/efficiency/time arrays are
                        overwritten with the fresh values; the overall
                        quantity is a high-water mark
    accumulate_invalid  invalid scans not yet counted are added to the
                        running total; the history list is merged,
                        de-duplicated by (barcode, timestamp) and cut to
                        the latest entries

apply_sync_result combines both for one sync pass and advances operation
and work order status. Callers own the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app

from scantrack.models import db
from scantrack.models.completion import CompletionSnapshot, InvalidScanFingerprint
from scantrack.models.work_order import OPERATION_STATUSES, WorkOrder
from scantrack.services.completion_engine import (
    CompletionResult,
    completion_percentage,
    propose_status,
)
from scantrack.services.efficiency_analyzer import AnalysisResult
from scantrack.services.scan_validator import InvalidScan, ValidationResult
from scantrack.utils.helpers import as_utc, parse_datetime

logger = logging.getLogger(__name__)

DEFAULT_INVALID_HISTORY_LIMIT = 100
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_OPERATION_RANK = {status: rank for rank, status in enumerate(OPERATION_STATUSES)}


@dataclass
class RecomputedResult:
    completion: CompletionResult
    analysis: AnalysisResult
    quantity: int


@dataclass
class WriteOutcome:
    status: str                 # no_scans | updated | unchanged
    new_invalid: int = 0
    overall_completed_quantity: int = 0
    work_order_status: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "new_invalid": self.new_invalid,
            "overall_completed_quantity": self.overall_completed_quantity,
            "work_order_status": self.work_order_status,
        }


def _history_limit() -> int:
    try:
        return int(current_app.config.get("INVALID_SCAN_HISTORY_LIMIT", DEFAULT_INVALID_HISTORY_LIMIT))
    except RuntimeError:
        return DEFAULT_INVALID_HISTORY_LIMIT


def get_or_create_snapshot(work_order: WorkOrder) -> CompletionSnapshot:
    snapshot = work_order.completion
    if snapshot is None:
        snapshot = CompletionSnapshot(
            work_order_id=work_order.id,
            overall_completed_quantity=0,
            overall_completion_percentage=0.0,
            operation_completion=[],
            operator_details=[],
            efficiency_metrics=[],
            time_metrics=[],
            invalid_scans=[],
            invalid_scans_count=0,
        )
        work_order.completion = snapshot
        db.session.add(snapshot)
    return snapshot


# ═════════════════════════════════════════════════════════════════════════════
# Merge rules
# ═════════════════════════════════════════════════════════════════════════════


def replace_recomputed(snapshot: CompletionSnapshot, result: RecomputedResult) -> int:
    """Overwrite the recomputed arrays; raise the overall quantity only. Returns the stored overall."""
    completion = result.completion
    analysis = result.analysis

    snapshot.operation_completion = [op.to_dict() for op in completion.operations]
    snapshot.operator_details = [d.to_dict() for d in analysis.operator_details]
    snapshot.efficiency_metrics = [m.to_dict() for m in analysis.efficiency_metrics]
    snapshot.time_metrics = [t.to_dict() for t in analysis.time_metrics]

    overall = max(snapshot.overall_completed_quantity or 0, completion.overall_completed_quantity)
    overall = min(overall, result.quantity)
    snapshot.overall_completed_quantity = overall
    snapshot.overall_completion_percentage = completion_percentage(overall, result.quantity)
    return overall


def _history_key(entry: dict) -> tuple:
    return entry.get("barcode_id"), entry.get("scanned_at")


def merge_invalid_history(existing: list[dict], incoming: list[dict], limit: int) -> list[dict]:
    """De-duplicate by (barcode, timestamp) and keep the ``limit`` newest, newest first."""
    merged = {}
    for entry in list(existing or []) + list(incoming):
        merged.setdefault(_history_key(entry), entry)
    ordered = sorted(
        merged.values(),
        key=lambda e: (parse_datetime(e.get("scanned_at")) or _EPOCH, e.get("barcode_id") or ""),
        reverse=True,
    )
    return ordered[:limit]


def accumulate_invalid(snapshot: CompletionSnapshot, work_order_id: int, invalid_scans: list[InvalidScan]) -> int:
    """Count invalid scans not seen by earlier passes and merge them into the history.

    Returns the number of newly counted scans.
    """
    if not invalid_scans:
        return 0

    known = {
        (fp.barcode_id, as_utc(fp.scanned_at))
        for fp in InvalidScanFingerprint.query.filter_by(work_order_id=work_order_id).all()
    }
    new_count = 0
    for scan in invalid_scans:
        key = (scan.barcode_id, as_utc(scan.scanned_at))
        if key in known:
            continue
        known.add(key)
        db.session.add(InvalidScanFingerprint(
            work_order_id=work_order_id,
            barcode_id=scan.barcode_id,
            scanned_at=scan.scanned_at,
            reason=scan.reason.value,
        ))
        new_count += 1

    snapshot.invalid_scans_count = (snapshot.invalid_scans_count or 0) + new_count
    snapshot.invalid_scans = merge_invalid_history(
        snapshot.invalid_scans, [s.to_dict() for s in invalid_scans], _history_limit(),
    )
    return new_count


# ═════════════════════════════════════════════════════════════════════════════
# Status advance
# ═════════════════════════════════════════════════════════════════════════════


def advance_operation_statuses(work_order: WorkOrder, completion: CompletionResult) -> None:
    """Write per-operation status onto the work order's operations, forward only."""
    fresh = {op.sequence: op.status for op in completion.operations}
    for index, op in enumerate(sorted(work_order.operations, key=lambda o: o.sequence), start=1):
        new_status = fresh.get(index)
        if new_status is None:
            continue
        if _OPERATION_RANK.get(new_status, 0) > _OPERATION_RANK.get(op.status or "pending", 0):
            op.status = new_status


def advance_work_order(work_order: WorkOrder, overall: int, now: datetime) -> str:
    new_status = propose_status(work_order.status, overall, work_order.quantity)
    if new_status != work_order.status:
        logger.info(
            "Work order %s: %s -> %s (%d/%d)",
            work_order.work_order_number, work_order.status, new_status, overall, work_order.quantity,
            extra={"work_order_id": work_order.id, "work_order_number": work_order.work_order_number},
        )
        work_order.status = new_status
    if new_status in ("in_progress", "completed") and work_order.actual_start_at is None:
        work_order.actual_start_at = now
    if new_status == "completed" and work_order.actual_end_at is None:
        work_order.actual_end_at = now
    return new_status


# ═════════════════════════════════════════════════════════════════════════════
# One sync pass
# ═════════════════════════════════════════════════════════════════════════════


def _observable_state(work_order: WorkOrder, snapshot: CompletionSnapshot | None) -> tuple:
    ops = tuple((op.sequence, op.status) for op in work_order.operations)
    if snapshot is None:
        return work_order.status, ops, None
    data = snapshot.to_dict()
    data.pop("last_synced_at", None)
    data.pop("id", None)
    return work_order.status, ops, repr(sorted(data.items()))


def apply_sync_result(
    work_order: WorkOrder,
    validation: ValidationResult,
    completion: CompletionResult,
    analysis: AnalysisResult,
    now: datetime,
) -> WriteOutcome:
    """Persist one sync pass for ``work_order``. Nothing is written when no scans were found."""
    if not validation.has_scans:
        return WriteOutcome(
            status="no_scans",
            overall_completed_quantity=work_order.completion.overall_completed_quantity
            if work_order.completion else 0,
            work_order_status=work_order.status,
        )

    before = _observable_state(work_order, work_order.completion)
    snapshot = get_or_create_snapshot(work_order)

    new_invalid = accumulate_invalid(snapshot, work_order.id, validation.invalid)

    if validation.valid:
        overall = replace_recomputed(
            snapshot, RecomputedResult(completion, analysis, work_order.quantity),
        )
        advance_operation_statuses(work_order, completion)
        advance_work_order(work_order, overall, now)

    snapshot.last_synced_at = now

    after = _observable_state(work_order, snapshot)
    return WriteOutcome(
        status="updated" if before != after else "unchanged",
        new_invalid=new_invalid,
        overall_completed_quantity=snapshot.overall_completed_quantity or 0,
        work_order_status=work_order.status,
    )
