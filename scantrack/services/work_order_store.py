"""
ScanTrack — Production Scan Reconciliation
Work Order Store access.

Loads work orders and converts them into plain, immutable plans so the
validator, engine and analyzer never touch ORM objects.
"""

from __future__ import annotations

from dataclasses import dataclass

from scantrack.core.exceptions import NotFoundError
from scantrack.models import db
from scantrack.models.work_order import SYNC_ELIGIBLE_STATUSES, WorkOrder


@dataclass(frozen=True)
class AssignedMachine:
    machine_id: int
    machine_name: str
    machine_serial: str | None = None

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "machine_name": self.machine_name,
            "machine_serial": self.machine_serial,
        }


@dataclass(frozen=True)
class OperationPlan:
    sequence: int
    operation_type: str
    machine_type: str
    machines: tuple[AssignedMachine, ...]
    estimated_time_seconds: float = 0.0
    planned_time_seconds: float = 0.0
    status: str = "pending"

    @property
    def machine_ids(self) -> frozenset[int]:
        return frozenset(m.machine_id for m in self.machines)

    @property
    def target_time_seconds(self) -> float:
        """Planned time when configured, otherwise the estimate."""
        return self.planned_time_seconds or self.estimated_time_seconds or 0.0


@dataclass(frozen=True)
class WorkOrderPlan:
    work_order_id: int
    work_order_number: str
    barcode_key: str
    quantity: int
    status: str
    operations: tuple[OperationPlan, ...]

    @property
    def operation_count(self) -> int:
        return len(self.operations)

    def operation(self, sequence: int) -> OperationPlan | None:
        if 1 <= sequence <= len(self.operations):
            return self.operations[sequence - 1]
        return None


def build_plan(work_order: WorkOrder) -> WorkOrderPlan:
    """Snapshot a WorkOrder and its operations.

    Operations are renumbered 1..M by stored sequence so barcode operation
    numbers always index into the list.
    """
    operations = []
    for op in sorted(work_order.operations, key=lambda o: o.sequence):
        operations.append(OperationPlan(
            sequence=len(operations) + 1,
            operation_type=op.operation_type or "",
            machine_type=op.machine_type or "",
            machines=tuple(
                AssignedMachine(m.id, m.name, m.serial_number) for m in op.assigned_machines
            ),
            estimated_time_seconds=float(op.estimated_time_seconds or 0),
            planned_time_seconds=float(op.planned_time_seconds or 0),
            status=op.status or "pending",
        ))
    return WorkOrderPlan(
        work_order_id=work_order.id,
        work_order_number=work_order.work_order_number,
        barcode_key=work_order.barcode_key,
        quantity=work_order.quantity,
        status=work_order.status,
        operations=tuple(operations),
    )


def get_work_order(work_order_id: int) -> WorkOrder:
    work_order = db.session.get(WorkOrder, work_order_id)
    if work_order is None:
        raise NotFoundError(resource="WorkOrder", resource_id=work_order_id)
    return work_order


def list_sync_candidates() -> list[WorkOrder]:
    """Work orders the sync tick reconciles, oldest first."""
    return (
        WorkOrder.query
        .filter(WorkOrder.status.in_(SYNC_ELIGIBLE_STATUSES))
        .order_by(WorkOrder.id)
        .all()
    )


def find_by_barcode_key(key: str) -> WorkOrder | None:
    """Resolve the key embedded in a barcode to its work order.

    Older labels carry the work order number instead of the short key,
    sometimes without its ``WO-`` prefix.
    """
    work_order = WorkOrder.query.filter_by(barcode_key=key).first()
    if work_order is None:
        work_order = WorkOrder.query.filter_by(work_order_number=key).first()
    if work_order is None and not key.startswith("WO-"):
        work_order = WorkOrder.query.filter_by(work_order_number=f"WO-{key}").first()
    return work_order
