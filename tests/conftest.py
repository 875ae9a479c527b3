"""
Shared pytest fixtures for the ScanTrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_machine / make_work_order / make_scan_session: DB factories
    - make_plan / make_record: in-memory plans and scan records for the
      pure validator / engine / analyzer tests
"""

from datetime import datetime, timezone

import pytest

from scantrack import create_app
from scantrack.models import db as _db
from scantrack.models.machine import Machine
from scantrack.models.work_order import WorkOrder, WorkOrderOperation
from scantrack.services import scan_store
from scantrack.services.production_sync import sync_orchestrator
from scantrack.services.scan_store import ScanRecord
from scantrack.services.scheduler_service import SchedulerService
from scantrack.services.work_order_store import AssignedMachine, OperationPlan, WorkOrderPlan

# Monday morning shift start used as the time origin across the suite.
T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _reset_sync_state():
    sync_orchestrator.tick_count = 0
    sync_orchestrator.skipped_count = 0
    sync_orchestrator.last_summary = None
    sync_orchestrator.last_started_at = None
    sync_orchestrator.last_finished_at = None


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _reset_sync_state()
        yield
        SchedulerService.stop()
        _reset_sync_state()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── DB factories ─────────────────────────────────────────────────────────


@pytest.fixture()
def make_machine():
    """Create and commit a Machine."""
    counter = {"n": 0}

    def _make(name=None, machine_type="overlock", serial_number=None):
        counter["n"] += 1
        machine = Machine(
            name=name or f"Machine {counter['n']}",
            machine_type=machine_type,
            serial_number=serial_number or f"SN-{counter['n']:04d}",
        )
        _db.session.add(machine)
        _db.session.commit()
        return machine

    return _make


@pytest.fixture()
def make_work_order():
    """Create and commit a WorkOrder with one operation per entry of ``operations``.

    Each entry is a list of machines; the first becomes the primary machine,
    the rest are secondary.
    """

    def _make(barcode_key="WO123", quantity=3, operations=(), status="in_progress",
              work_order_number=None, estimated_time_seconds=60, planned_time_seconds=0,
              operation_types=None):
        work_order = WorkOrder(
            work_order_number=work_order_number or f"WO-{barcode_key}",
            barcode_key=barcode_key,
            product_name="Crew neck T-shirt",
            quantity=quantity,
            status=status,
        )
        for seq, machines in enumerate(operations, start=1):
            machines = list(machines)
            op = WorkOrderOperation(
                sequence=seq,
                operation_type=(operation_types or {}).get(seq, f"Operation {seq}"),
                machine_type="overlock",
                primary_machine=machines[0] if machines else None,
                estimated_time_seconds=estimated_time_seconds,
                planned_time_seconds=planned_time_seconds,
                status="pending",
            )
            op.secondary_machines = machines[1:]
            work_order.operations.append(op)
        _db.session.add(work_order)
        _db.session.commit()
        return work_order

    return _make


@pytest.fixture()
def make_scan_session():
    """Sign an operator in on ``machine``, record ``scans`` and optionally sign out.

    ``scans`` is a list of ``(barcode_id, scanned_at)`` pairs.
    """

    def _make(machine, scans, operator_id="OP-1", operator_name="Ayse Demir",
              signed_in_at=T0, signed_out_at=None):
        op_session = scan_store.sign_in(machine.id, operator_id, signed_in_at, operator_name=operator_name)
        for barcode_id, scanned_at in scans:
            scan_store.record_scan(op_session, barcode_id, scanned_at)
        if signed_out_at is not None:
            scan_store.sign_out(op_session, signed_out_at)
        _db.session.commit()
        return op_session

    return _make


# ── In-memory builders ───────────────────────────────────────────────────


@pytest.fixture()
def make_plan():
    """Build a WorkOrderPlan; ``operations`` lists the machine ids of each operation."""

    def _make(barcode_key="WO123", quantity=3, operations=((1,), (2,)), status="in_progress",
              estimated_time_seconds=60.0, planned_time_seconds=0.0):
        ops = tuple(
            OperationPlan(
                sequence=seq,
                operation_type=f"Operation {seq}",
                machine_type="overlock",
                machines=tuple(AssignedMachine(mid, f"Machine {mid}") for mid in machine_ids),
                estimated_time_seconds=estimated_time_seconds,
                planned_time_seconds=planned_time_seconds,
            )
            for seq, machine_ids in enumerate(operations, start=1)
        )
        return WorkOrderPlan(
            work_order_id=1,
            work_order_number=f"WO-{barcode_key}",
            barcode_key=barcode_key,
            quantity=quantity,
            status=status,
            operations=ops,
        )

    return _make


@pytest.fixture()
def make_record():
    """Build a ScanRecord as scans_for_key would return it."""
    counter = {"n": 0}

    def _make(barcode_id, scanned_at, machine_id=1, operator_id="OP-1", session_id=1,
              signed_in_at=T0, signed_out_at=None):
        counter["n"] += 1
        return ScanRecord(
            scan_id=counter["n"],
            barcode_id=barcode_id,
            scanned_at=scanned_at,
            machine_id=machine_id,
            machine_name=f"Machine {machine_id}",
            operator_id=operator_id,
            operator_name=f"Operator {operator_id}",
            session_id=session_id,
            session_signed_in_at=signed_in_at,
            session_signed_out_at=signed_out_at,
            production_date=scanned_at.date(),
        )

    return _make
