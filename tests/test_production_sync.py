"""
End-to-end tests for the sync orchestrator.

Covers:
    - a tick reconciles scan sessions into completion snapshots
    - repeated ticks over the same scans change nothing but last_synced_at
    - overall completion never drops after scan data is swept
    - one failing work order does not stop the others
    - single-flight: a tick started during another one is skipped
    - status advance, paused orders, final orders left alone
    - hyphenated key collisions and unassigned machines
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from scantrack.models import db
from scantrack.models.completion import CompletionSnapshot
from scantrack.models.work_order import WorkOrder
from scantrack.services.barcode_codec import encode
from scantrack.services.production_sync import SyncOrchestrator, sync_orchestrator
from scantrack.services.retention_service import sweep_tracking_data

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _at(minutes):
    return T0 + timedelta(minutes=minutes)


@pytest.fixture()
def machines(make_machine):
    return make_machine("Overlock 1"), make_machine("Flatlock 1")


@pytest.fixture()
def order(machines, make_work_order):
    m1, m2 = machines
    return make_work_order(barcode_key="WO123", quantity=3, operations=[[m1], [m2]], status="ready")


def _scan_units(make_scan_session, machine, key, units, operation, start=0, **kwargs):
    """One session on ``machine`` scanning ``units`` at ``operation``, two minutes apart."""
    scans = [(encode(key, unit, operation), _at(start + 2 * i)) for i, unit in enumerate(units)]
    return make_scan_session(machine, scans, signed_in_at=_at(start), **kwargs)


def _reload(work_order_id):
    db.session.expire_all()
    return db.session.get(WorkOrder, work_order_id)


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 1: Reconciliation
# ═════════════════════════════════════════════════════════════════════════════


class TestSyncTick:
    def test_tick_builds_snapshot(self, order, machines, make_scan_session):
        m1, m2 = machines
        _scan_units(make_scan_session, m1, "WO123", [1, 2], 1)
        _scan_units(make_scan_session, m2, "WO123", [1], 2, start=30, operator_id="OP-2")
        make_scan_session(m2, [("WO123-004-02-A1B2", _at(40))], operator_id="OP-2", signed_in_at=_at(39))

        summary = sync_orchestrator.run_tick(trigger="manual")

        assert summary["status"] == "completed"
        assert summary["work_orders"] == 1
        assert summary["updated"] == 1
        assert summary["errors"] == 0
        assert summary["invalid_scans"] == 1

        wo = _reload(order.id)
        snap = wo.completion
        assert snap.overall_completed_quantity == 1
        assert snap.overall_completion_percentage == 33.33
        assert [op["completed_quantity"] for op in snap.operation_completion] == [2, 1]
        assert snap.invalid_scans_count == 1
        assert snap.invalid_scans[0]["reason"] == "exceeds_quantity"
        assert wo.status == "in_progress"
        assert wo.actual_start_at is not None

    def test_repeated_ticks_are_idempotent(self, order, machines, make_scan_session):
        m1, m2 = machines
        _scan_units(make_scan_session, m1, "WO123", [1, 2], 1)
        _scan_units(make_scan_session, m2, "WO123", [1], 2, start=30)
        make_scan_session(m1, [("WO123-XYZ-02-A1B2", _at(50))], signed_in_at=_at(49))

        sync_orchestrator.run_tick()
        first = _reload(order.id).completion.to_dict()

        summary = sync_orchestrator.run_tick()
        second = _reload(order.id).completion.to_dict()

        assert summary["updated"] == 0
        assert summary["unchanged"] == 1
        assert summary["invalid_scans"] == 0
        assert second["invalid_scans_count"] == 1
        first.pop("last_synced_at")
        second.pop("last_synced_at")
        assert first == second

    def test_work_order_without_scans_is_untouched(self, order):
        summary = sync_orchestrator.run_tick()
        assert summary["no_scans"] == 1
        assert CompletionSnapshot.query.count() == 0
        assert _reload(order.id).status == "ready"

    def test_all_units_complete_the_order(self, order, machines, make_scan_session):
        m1, m2 = machines
        _scan_units(make_scan_session, m1, "WO123", [1, 2, 3], 1)
        _scan_units(make_scan_session, m2, "WO123", [1, 2, 3], 2, start=30)

        sync_orchestrator.run_tick()

        wo = _reload(order.id)
        assert wo.status == "completed"
        assert wo.actual_end_at is not None
        assert [op.status for op in wo.operations] == ["completed", "completed"]
        assert wo.completion.overall_completion_percentage == 100.0

    def test_final_orders_are_not_synced(self, machines, make_work_order, make_scan_session):
        m1, m2 = machines
        done = make_work_order(barcode_key="WO9", quantity=1, operations=[[m1]], status="completed")
        _scan_units(make_scan_session, m1, "WO9", [1], 1)

        summary = sync_orchestrator.run_tick()

        assert summary["work_orders"] == 0
        assert _reload(done.id).completion is None

    def test_paused_order_is_not_resumed(self, machines, make_work_order, make_scan_session):
        m1, m2 = machines
        wo = make_work_order(barcode_key="WO77", quantity=2, operations=[[m1], [m2]], status="paused")
        _scan_units(make_scan_session, m1, "WO77", [1], 1)
        _scan_units(make_scan_session, m2, "WO77", [1], 2, start=10)

        sync_orchestrator.run_tick()
        wo = _reload(wo.id)
        assert wo.status == "paused"
        assert wo.completion.overall_completed_quantity == 1

        _scan_units(make_scan_session, m1, "WO77", [2], 1, start=20)
        _scan_units(make_scan_session, m2, "WO77", [2], 2, start=30)
        sync_orchestrator.run_tick()
        assert _reload(wo.id).status == "completed"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 2: Scan attribution
# ═════════════════════════════════════════════════════════════════════════════


class TestScanAttribution:
    def test_longer_key_scans_do_not_count(self, machines, make_work_order, make_scan_session):
        m1, _ = machines
        short = make_work_order(barcode_key="WO1", quantity=2, operations=[[m1]], status="ready")
        longer = make_work_order(barcode_key="WO1-A", quantity=2, operations=[[m1]], status="ready")
        _scan_units(make_scan_session, m1, "WO1-A", [1, 2], 1)

        sync_orchestrator.run_tick()

        assert _reload(short.id).completion is None
        assert _reload(longer.id).completion.overall_completed_quantity == 2

    def test_unassigned_machine_scans_are_ignored(self, order, machines, make_machine, make_scan_session):
        m1, m2 = machines
        stray = make_machine("Coverstitch 1")
        _scan_units(make_scan_session, stray, "WO123", [1, 2], 1)
        _scan_units(make_scan_session, m1, "WO123", [3], 1, start=10)

        sync_orchestrator.run_tick()

        snap = _reload(order.id).completion
        assert snap.operation_completion[0]["completed_quantity"] == 1
        assert snap.invalid_scans_count == 0

    def test_operator_metrics_are_persisted(self, order, machines, make_scan_session):
        m1, _ = machines
        _scan_units(make_scan_session, m1, "WO123", [1, 2, 3], 1, operator_id="OP-7",
                    operator_name="Mehmet Kaya", signed_out_at=_at(60))

        sync_orchestrator.run_tick()

        snap = _reload(order.id).completion
        metric = snap.efficiency_metrics[0]
        assert metric["operator_id"] == "OP-7"
        assert metric["operator_name"] == "Mehmet Kaya"
        assert metric["avg_time_per_unit"] == 120
        assert metric["efficiency_percentage"] == 50.0
        assert metric["total_session_time"] == 3600
        assert snap.operator_details[0]["total_scans"] == 3
        assert snap.time_metrics[0]["total_units_analyzed"] == 3


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 3: Durability across retention
# ═════════════════════════════════════════════════════════════════════════════


class TestRetentionInteraction:
    def test_overall_kept_after_old_days_are_swept(self, order, machines, make_scan_session):
        m1, m2 = machines
        _scan_units(make_scan_session, m1, "WO123", [1, 2], 1)
        _scan_units(make_scan_session, m2, "WO123", [1, 2], 2, start=30)
        next_day = 24 * 60
        _scan_units(make_scan_session, m1, "WO123", [3], 1, start=next_day)

        sync_orchestrator.run_tick()
        assert _reload(order.id).completion.overall_completed_quantity == 2

        sweep_tracking_data(retention_days=10, today=T0.date() + timedelta(days=11))
        summary = sync_orchestrator.run_tick()

        snap = _reload(order.id).completion
        assert summary["errors"] == 0
        assert snap.overall_completed_quantity == 2
        assert snap.overall_completion_percentage == 66.67
        assert snap.operation_completion[0]["completed_quantity"] == 1
        assert _reload(order.id).status == "in_progress"

    def test_everything_swept_means_no_scans(self, order, machines, make_scan_session):
        m1, m2 = machines
        _scan_units(make_scan_session, m1, "WO123", [1], 1)
        _scan_units(make_scan_session, m2, "WO123", [1], 2, start=30)
        sync_orchestrator.run_tick()
        synced_at = _reload(order.id).completion.last_synced_at

        sweep_tracking_data(retention_days=10, today=T0.date() + timedelta(days=30))
        summary = sync_orchestrator.run_tick()

        assert summary["no_scans"] == 1
        snap = _reload(order.id).completion
        assert snap.overall_completed_quantity == 1
        assert snap.last_synced_at == synced_at


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 4: Failure isolation & single flight
# ═════════════════════════════════════════════════════════════════════════════


class TestTickControl:
    def test_failure_in_one_order_does_not_block_others(self, machines, make_work_order, make_scan_session):
        m1, _ = machines
        broken = make_work_order(barcode_key="WO1", quantity=1, operations=[[m1]], status="ready")
        healthy = make_work_order(barcode_key="WO2", quantity=1, operations=[[m1]], status="ready")
        _scan_units(make_scan_session, m1, "WO1", [1], 1)
        _scan_units(make_scan_session, m1, "WO2", [1], 1, start=10)

        original = sync_orchestrator.process_work_order

        def flaky(work_order_id, now):
            if work_order_id == broken.id:
                raise RuntimeError("boom")
            return original(work_order_id, now)

        with patch.object(sync_orchestrator, "process_work_order", side_effect=flaky):
            summary = sync_orchestrator.run_tick()

        assert summary["errors"] == 1
        assert summary["updated"] == 1
        assert summary["failed_work_orders"] == [{"work_order_id": broken.id, "error": "boom"}]
        assert _reload(broken.id).completion is None
        assert _reload(healthy.id).status == "completed"

    def test_tick_during_tick_is_skipped(self, order, machines, make_scan_session):
        m1, _ = machines
        _scan_units(make_scan_session, m1, "WO123", [1], 1)
        nested = {}
        original = sync_orchestrator.process_work_order

        def reentrant(work_order_id, now):
            nested["result"] = sync_orchestrator.run_tick(trigger="manual")
            assert sync_orchestrator.is_running is True
            return original(work_order_id, now)

        with patch.object(sync_orchestrator, "process_work_order", side_effect=reentrant):
            summary = sync_orchestrator.run_tick(trigger="interval")

        assert summary["status"] == "completed"
        assert nested["result"]["status"] == "skipped"
        assert nested["result"]["trigger"] == "manual"
        assert sync_orchestrator.skipped_count == 1
        assert sync_orchestrator.tick_count == 1
        assert sync_orchestrator.is_running is False

    def test_status_reports_last_tick(self):
        orchestrator = SyncOrchestrator()
        assert orchestrator.status()["last_summary"] is None

        orchestrator.run_tick(trigger="cli")
        status = orchestrator.status()

        assert status["running"] is False
        assert status["tick_count"] == 1
        assert status["last_summary"]["trigger"] == "cli"
        assert status["last_finished_at"] is not None
