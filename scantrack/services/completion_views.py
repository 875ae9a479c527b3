"""
ScanTrack — Production Scan Reconciliation
Read projections of the persisted completion snapshot.

Every function reads what the last sync wrote and reshapes it for the
dashboards; none of them recompute completion from the scan log.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from scantrack.models.work_order import WorkOrder
from scantrack.utils.helpers import as_utc, isoformat, parse_datetime, round_half_up, utcnow

EMPTY_COMPLETION = {
    "overall_completed_quantity": 0,
    "overall_completion_percentage": 0.0,
    "operation_completion": [],
    "operator_details": [],
    "efficiency_metrics": [],
    "time_metrics": [],
    "invalid_scans": [],
    "invalid_scans_count": 0,
    "last_synced_at": None,
}


def _snapshot(work_order: WorkOrder) -> dict:
    if work_order.completion is None:
        return dict(EMPTY_COMPLETION)
    return work_order.completion.to_dict()


def _header(work_order: WorkOrder) -> dict:
    return {
        "work_order_id": work_order.id,
        "work_order_number": work_order.work_order_number,
    }


def _avg(values: list[float]) -> float:
    return round_half_up(sum(values) / len(values), 2) if values else 0.0


def completion_summary(work_order: WorkOrder) -> dict:
    snap = _snapshot(work_order)
    return {
        **_header(work_order),
        "total_quantity": work_order.quantity,
        "status": work_order.status,
        "completion": {
            "overall_completed_quantity": snap["overall_completed_quantity"],
            "overall_completion_percentage": snap["overall_completion_percentage"],
            "operation_completion": snap["operation_completion"],
            "invalid_scans_count": snap["invalid_scans_count"],
            "last_synced_at": snap["last_synced_at"],
        },
    }


def operator_performance(work_order: WorkOrder) -> dict:
    """Operator details grouped by operator, each operation annotated with its efficiency."""
    snap = _snapshot(work_order)
    efficiency = {
        (m["operator_id"], m["operation_number"], m["machine_id"]): m
        for m in snap["efficiency_metrics"]
    }
    operators = OrderedDict()
    for detail in snap["operator_details"]:
        entry = operators.setdefault(detail["operator_id"], {
            "operator_id": detail["operator_id"],
            "operator_name": detail["operator_name"],
            "total_scans": 0,
            "operations": [],
        })
        metric = efficiency.get((detail["operator_id"], detail["operation_number"], detail["machine_id"]))
        entry["operations"].append({
            "operation_number": detail["operation_number"],
            "operation_type": detail["operation_type"],
            "machine_id": detail["machine_id"],
            "machine_name": detail["machine_name"],
            "scans": detail["total_scans"],
            "sessions": detail.get("sessions", []),
            "efficiency": {
                "avg_time_per_unit": metric["avg_time_per_unit"],
                "efficiency_percentage": metric["efficiency_percentage"],
                "utilization_rate": metric["utilization_rate"],
                "units_scanned": metric["units_scanned"],
            } if metric else None,
        })
        entry["total_scans"] += detail["total_scans"]
    return {**_header(work_order), "operators": list(operators.values())}


def operations_status(work_order: WorkOrder) -> dict:
    snap = _snapshot(work_order)
    return {
        **_header(work_order),
        "total_quantity": work_order.quantity,
        "operations": snap["operation_completion"],
    }


def time_analysis(work_order: WorkOrder) -> dict:
    """Timing per operation × machine with variance against the target time."""
    snap = _snapshot(work_order)
    rows = []
    for metric in snap["time_metrics"]:
        target = metric.get("planned_time_seconds") or metric.get("estimated_time_seconds") or 0
        rows.append({
            "operation_number": metric["operation_number"],
            "operation_type": metric["operation_type"],
            "machine_id": metric["machine_id"],
            "machine_name": metric["machine_name"],
            "avg_completion_time": metric["avg_completion_time_seconds"],
            "min_completion_time": metric["min_completion_time_seconds"],
            "max_completion_time": metric["max_completion_time_seconds"],
            "estimated_time": metric.get("estimated_time_seconds") or 0,
            "planned_time": metric.get("planned_time_seconds") or 0,
            "variance": round_half_up(metric["avg_completion_time_seconds"] - target, 2),
            "units_analyzed": metric["total_units_analyzed"],
        })
    return {**_header(work_order), "time_analysis": rows}


def _group(metrics: list[dict], key_fields: tuple[str, ...]) -> list[dict]:
    groups = OrderedDict()
    for m in metrics:
        key = tuple(m.get(f) for f in key_fields)
        group = groups.setdefault(key, {f: m.get(f) for f in key_fields} | {"metrics": []})
        group["metrics"].append(m)
    result = []
    for group in groups.values():
        metrics_in_group = group["metrics"]
        group["avg_efficiency"] = _avg([m["efficiency_percentage"] for m in metrics_in_group])
        group["avg_utilization"] = _avg([m["utilization_rate"] for m in metrics_in_group])
        group["total_units"] = sum(m["units_scanned"] for m in metrics_in_group)
        group["count"] = len(metrics_in_group)
        result.append(group)
    return result


def efficiency_summary(work_order: WorkOrder) -> dict:
    metrics = _snapshot(work_order)["efficiency_metrics"]
    return {
        **_header(work_order),
        "summary": {
            "avg_efficiency": _avg([m["efficiency_percentage"] for m in metrics]),
            "avg_utilization": _avg([m["utilization_rate"] for m in metrics]),
            "total_units_produced": sum(m["units_scanned"] for m in metrics),
        },
        "by_operation": _group(metrics, ("operation_number", "operation_type")),
        "by_machine": _group(metrics, ("machine_id", "machine_name")),
        "by_operator": _group(metrics, ("operator_id", "operator_name")),
    }


def live_status(work_order: WorkOrder, sync_interval_seconds: int, now: datetime | None = None) -> dict:
    snap = _snapshot(work_order)
    now = as_utc(now) if now else utcnow()
    last_synced = parse_datetime(snap["last_synced_at"])
    since = int((now - last_synced).total_seconds()) if last_synced else None
    return {
        "work_order": {
            **_header(work_order),
            "status": work_order.status,
            "total_quantity": work_order.quantity,
            "completed_quantity": snap["overall_completed_quantity"],
            "completion_percentage": snap["overall_completion_percentage"],
            "started_at": isoformat(work_order.actual_start_at),
            "completed_at": isoformat(work_order.actual_end_at),
            "planned_end_at": isoformat(work_order.planned_end_at),
            "last_synced_at": snap["last_synced_at"],
            "seconds_since_last_sync": since,
            "next_sync_in_seconds": max(sync_interval_seconds - since, 0) if since is not None else None,
        },
        "operations": snap["operation_completion"],
    }


def invalid_scans_page(work_order: WorkOrder, limit: int = 50, offset: int = 0) -> dict:
    """Newest-first page of the invalid-scan history plus the exact running total."""
    snap = _snapshot(work_order)
    history = sorted(
        snap["invalid_scans"],
        key=lambda e: e.get("scanned_at") or "",
        reverse=True,
    )
    return {
        **_header(work_order),
        "total_invalid_scans": snap["invalid_scans_count"],
        "history_size": len(history),
        "limit": limit,
        "offset": offset,
        "invalid_scans": history[offset:offset + limit],
    }
