"""
ScanTrack — Production Scan Reconciliation
Completion Inference Engine.

A unit counts as done at an operation as soon as at least one valid scan
for it was recorded there on an assigned machine. A unit is done overall
once it is done at every operation, so the overall figure is the size of
the intersection of the per-operation unit sets.

Pure functions over ValidationResult / WorkOrderPlan; no database access.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from scantrack.models.work_order import FINAL_STATUSES
from scantrack.services.scan_validator import ValidationResult
from scantrack.services.work_order_store import WorkOrderPlan
from scantrack.utils.helpers import round_half_up

# Statuses an order leaves for in_progress once the first unit is done overall.
# Paused orders stay paused until someone resumes them.
_STARTABLE_STATUSES = {"pending", "planned", "ready", "scheduled", "delayed"}


@dataclass
class OperationCompletion:
    sequence: int
    operation_type: str
    machine_type: str
    completed_quantity: int
    total_quantity: int
    completion_percentage: int
    status: str
    assigned_machines: list[dict] = field(default_factory=list)
    units: frozenset[int] = frozenset()

    def to_dict(self) -> dict:
        return {
            "operation_number": self.sequence,
            "operation_type": self.operation_type,
            "machine_type": self.machine_type,
            "completed_quantity": self.completed_quantity,
            "total_quantity": self.total_quantity,
            "completion_percentage": self.completion_percentage,
            "status": self.status,
            "assigned_machines": self.assigned_machines,
        }


@dataclass
class CompletionResult:
    overall_completed_quantity: int
    overall_completion_percentage: float
    operations: list[OperationCompletion]
    proposed_status: str


def operation_status(completed: int, quantity: int) -> str:
    if quantity > 0 and completed >= quantity:
        return "completed"
    if completed > 0:
        return "in_progress"
    return "pending"


def completion_percentage(completed: int, quantity: int) -> float:
    """Overall percentage, two decimals, capped at 100."""
    if quantity <= 0:
        return 0.0
    return round_half_up(min(completed / quantity * 100, 100.0), 2)


def completed_units(validation: ValidationResult, sequence: int, quantity: int) -> set[int]:
    """Distinct units with at least one valid scan under operation ``sequence``."""
    units = set()
    for operators in validation.valid.get(sequence, {}).values():
        for sessions in operators.values():
            for session in sessions.values():
                units.update(s.unit for s in session.scans if 1 <= s.unit <= quantity)
    return units


def overall_units(units_by_operation: dict[int, set[int]], operation_count: int) -> set[int]:
    """Units done at every operation 1..M; empty when M is 0 or any operation has no data."""
    if operation_count == 0:
        return set()
    result = None
    for seq in range(1, operation_count + 1):
        units = units_by_operation.get(seq)
        if not units:
            return set()
        result = set(units) if result is None else result & units
    return result or set()


def propose_status(current: str, overall: int, quantity: int) -> str:
    """Forward-only status advance."""
    if current in FINAL_STATUSES:
        return current
    if quantity > 0 and overall >= quantity:
        return "completed"
    if overall > 0 and current in _STARTABLE_STATUSES:
        return "in_progress"
    return current


def infer_completion(validation: ValidationResult, plan: WorkOrderPlan) -> CompletionResult:
    quantity = plan.quantity
    units_by_operation = {}
    operations = []

    for op in plan.operations:
        units = completed_units(validation, op.sequence, quantity)
        units_by_operation[op.sequence] = units
        count = min(len(units), quantity)
        operations.append(OperationCompletion(
            sequence=op.sequence,
            operation_type=op.operation_type,
            machine_type=op.machine_type,
            completed_quantity=count,
            total_quantity=quantity,
            completion_percentage=min(round_half_up(count / quantity * 100), 100) if quantity else 0,
            status=operation_status(count, quantity),
            assigned_machines=[m.to_dict() for m in op.machines],
            units=frozenset(units),
        ))

    overall = min(len(overall_units(units_by_operation, plan.operation_count)), quantity)
    return CompletionResult(
        overall_completed_quantity=overall,
        overall_completion_percentage=completion_percentage(overall, quantity),
        operations=operations,
        proposed_status=propose_status(plan.status, overall, quantity),
    )
