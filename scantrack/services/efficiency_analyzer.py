"""
ScanTrack — Production Scan Reconciliation
Efficiency & Timing Analyzer.

Operator metrics (per operator × operation × machine):
    Within each session, scans are ordered by time and the gaps between
    consecutive scans are taken as time-per-unit. Gaps of 30 minutes or
    more are breaks and are dropped. The retained gaps of all of the
    operator's sessions there are pooled:

        avg_time_per_unit   = mean(retained gaps)
        efficiency %        = min(target / avg × 100, 200), target = planned or estimated
        utilization %       = Σ retained gaps / Σ session durations × 100

Timing metrics (per machine × operation):
    Scans are grouped by unit. A unit scanned twice or more took
    last − first; a unit scanned once is assumed to have taken the
    operation's estimated time.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from scantrack.services.scan_validator import SessionScans, ValidationResult, ValidScan
from scantrack.services.work_order_store import WorkOrderPlan
from scantrack.utils.helpers import isoformat, round_half_up

BREAK_THRESHOLD_SECONDS = 1800
MAX_EFFICIENCY_PERCENTAGE = 200.0


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class EfficiencyMetric:
    operation: int
    operation_type: str
    machine_id: int
    machine_name: str
    operator_id: str
    operator_name: str
    units_scanned: int
    avg_time_per_unit: int
    estimated_time_per_unit: float
    planned_time_per_unit: float
    efficiency_percentage: float
    utilization_rate: float
    total_productive_time: int
    total_session_time: int
    session_count: int

    def to_dict(self) -> dict:
        return {
            "operation_number": self.operation,
            "operation_type": self.operation_type,
            "machine_id": self.machine_id,
            "machine_name": self.machine_name,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "units_scanned": self.units_scanned,
            "avg_time_per_unit": self.avg_time_per_unit,
            "estimated_time_per_unit": self.estimated_time_per_unit,
            "planned_time_per_unit": self.planned_time_per_unit,
            "efficiency_percentage": self.efficiency_percentage,
            "utilization_rate": self.utilization_rate,
            "total_productive_time": self.total_productive_time,
            "total_session_time": self.total_session_time,
            "session_count": self.session_count,
        }


@dataclass
class OperatorDetail:
    operation: int
    operation_type: str
    machine_id: int
    machine_name: str
    operator_id: str
    operator_name: str
    total_scans: int
    sessions: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "operation_number": self.operation,
            "operation_type": self.operation_type,
            "machine_id": self.machine_id,
            "machine_name": self.machine_name,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "total_scans": self.total_scans,
            "sessions": self.sessions,
        }


@dataclass
class TimeMetric:
    operation: int
    operation_type: str
    machine_id: int
    machine_name: str
    avg_completion_time_seconds: int
    min_completion_time_seconds: int
    max_completion_time_seconds: int
    total_units_analyzed: int
    estimated_time_seconds: float
    planned_time_seconds: float

    def to_dict(self) -> dict:
        return {
            "operation_number": self.operation,
            "operation_type": self.operation_type,
            "machine_id": self.machine_id,
            "machine_name": self.machine_name,
            "avg_completion_time_seconds": self.avg_completion_time_seconds,
            "min_completion_time_seconds": self.min_completion_time_seconds,
            "max_completion_time_seconds": self.max_completion_time_seconds,
            "total_units_analyzed": self.total_units_analyzed,
            "estimated_time_seconds": self.estimated_time_seconds,
            "planned_time_seconds": self.planned_time_seconds,
        }


@dataclass
class AnalysisResult:
    efficiency_metrics: list[EfficiencyMetric] = field(default_factory=list)
    operator_details: list[OperatorDetail] = field(default_factory=list)
    time_metrics: list[TimeMetric] = field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════════════
# Calculations
# ═════════════════════════════════════════════════════════════════════════════


def session_intervals(scans: list[ValidScan]) -> list[float]:
    """Gaps in seconds between consecutive scans, breaks removed."""
    ordered = sorted(s.scanned_at for s in scans)
    gaps = []
    for prev, cur in zip(ordered, ordered[1:]):
        delta = (cur - prev).total_seconds()
        if delta < BREAK_THRESHOLD_SECONDS:
            gaps.append(delta)
    return gaps


def efficiency_percentage(target_seconds: float, avg_seconds: float) -> float:
    if target_seconds <= 0 or avg_seconds <= 0:
        return 0.0
    return round_half_up(min(target_seconds / avg_seconds * 100, MAX_EFFICIENCY_PERCENTAGE), 2)


def operator_efficiency(sessions: list[SessionScans], op, machine_id, machine_name) -> EfficiencyMetric:
    intervals = []
    session_time = 0.0
    units_scanned = 0
    for session in sessions:
        intervals.extend(session_intervals(session.scans))
        session_time += session.duration_seconds
        units_scanned += len(session.scans)

    productive = sum(intervals)
    avg = productive / len(intervals) if intervals else 0.0
    utilization = round_half_up(productive / session_time * 100, 2) if session_time > 0 else 0.0
    first = sessions[0]
    return EfficiencyMetric(
        operation=op.sequence,
        operation_type=op.operation_type,
        machine_id=machine_id,
        machine_name=machine_name,
        operator_id=first.operator_id,
        operator_name=first.operator_name,
        units_scanned=units_scanned,
        avg_time_per_unit=round_half_up(avg),
        estimated_time_per_unit=op.estimated_time_seconds,
        planned_time_per_unit=op.planned_time_seconds,
        efficiency_percentage=efficiency_percentage(op.target_time_seconds, avg),
        utilization_rate=utilization,
        total_productive_time=round_half_up(productive),
        total_session_time=round_half_up(session_time),
        session_count=len(sessions),
    )


def unit_completion_times(scans: list[ValidScan], estimated_seconds: float) -> list[float]:
    by_unit = defaultdict(list)
    for scan in scans:
        by_unit[scan.unit].append(scan.scanned_at)
    times = []
    for unit in sorted(by_unit):
        stamps = by_unit[unit]
        if len(stamps) == 1:
            times.append(estimated_seconds or 0.0)
        else:
            times.append((max(stamps) - min(stamps)).total_seconds())
    return times


def analyze(validation: ValidationResult, plan: WorkOrderPlan) -> AnalysisResult:
    """Operator efficiency, operator details and machine timing for one order."""
    result = AnalysisResult()

    for op_seq, machines in sorted(validation.valid.items()):
        op = plan.operation(op_seq)
        if op is None:
            continue
        for machine_id, operators in sorted(machines.items()):
            machine_name = validation.machine_names.get(machine_id, "")
            machine_scans = []
            for operator_id in sorted(operators):
                sessions = sorted(operators[operator_id].values(), key=lambda s: s.signed_in_at)
                sessions = [s for s in sessions if s.scans]
                if not sessions:
                    continue
                result.efficiency_metrics.append(
                    operator_efficiency(sessions, op, machine_id, machine_name)
                )
                result.operator_details.append(OperatorDetail(
                    operation=op.sequence,
                    operation_type=op.operation_type,
                    machine_id=machine_id,
                    machine_name=machine_name,
                    operator_id=operator_id,
                    operator_name=sessions[0].operator_name,
                    total_scans=sum(len(s.scans) for s in sessions),
                    sessions=[
                        {
                            "session_id": s.session_id,
                            "signed_in_at": isoformat(s.signed_in_at),
                            "signed_out_at": isoformat(s.signed_out_at),
                            "scan_count": len(s.scans),
                        }
                        for s in sessions
                    ],
                ))
                for s in sessions:
                    machine_scans.extend(s.scans)

            times = unit_completion_times(machine_scans, op.estimated_time_seconds)
            if times:
                result.time_metrics.append(TimeMetric(
                    operation=op.sequence,
                    operation_type=op.operation_type,
                    machine_id=machine_id,
                    machine_name=machine_name,
                    avg_completion_time_seconds=round_half_up(sum(times) / len(times)),
                    min_completion_time_seconds=round_half_up(min(times)),
                    max_completion_time_seconds=round_half_up(max(times)),
                    total_units_analyzed=len(times),
                    estimated_time_seconds=op.estimated_time_seconds,
                    planned_time_seconds=op.planned_time_seconds,
                ))

    return result
