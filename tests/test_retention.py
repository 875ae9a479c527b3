"""
Tests for scan-log retention.

Covers:
    - retention_cutoff arithmetic
    - sweep_tracking_data deletes whole production days (and everything under them)
    - invalid-scan fingerprints older than the cutoff are dropped too
    - check_retention_window warning
"""

import logging
from datetime import date, datetime, timedelta, timezone

from scantrack.models import db
from scantrack.models.completion import InvalidScanFingerprint
from scantrack.models.tracking import MachineDay, OperatorSession, ProductionDay, ScanEvent
from scantrack.services.retention_service import (
    check_retention_window,
    retention_cutoff,
    sweep_tracking_data,
)

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _day(n):
    return T0 + timedelta(days=n)


class TestRetentionCutoff:
    def test_cutoff_is_today_minus_window(self):
        assert retention_cutoff(date(2026, 3, 20), 10) == date(2026, 3, 10)

    def test_zero_day_window_keeps_today_only(self):
        assert retention_cutoff(date(2026, 3, 20), 0) == date(2026, 3, 20)


class TestSweepTrackingData:
    def test_deletes_days_strictly_before_cutoff(self, make_machine, make_scan_session):
        machine = make_machine()
        for n in (0, 1, 2):
            make_scan_session(machine, [("WO123-001-01-65A8", _day(n))], signed_in_at=_day(n))

        # today = day 12, window 10 -> cutoff day 2
        result = sweep_tracking_data(retention_days=10, today=_day(12).date())

        assert result["production_days"] == 2
        assert result["machine_days"] == 2
        assert result["sessions"] == 2
        assert result["scans"] == 2
        assert result["cutoff"] == _day(2).date().isoformat()
        assert result["retention_days"] == 10
        assert [d.production_date for d in ProductionDay.query.all()] == [_day(2).date()]
        assert MachineDay.query.count() == 1
        assert OperatorSession.query.count() == 1
        assert ScanEvent.query.count() == 1

    def test_nothing_to_delete(self, make_machine, make_scan_session):
        machine = make_machine()
        make_scan_session(machine, [("WO123-001-01-65A8", _day(0))])
        result = sweep_tracking_data(retention_days=10, today=_day(3).date())
        assert result["production_days"] == 0
        assert ScanEvent.query.count() == 1

    def test_default_window_from_config(self, app, monkeypatch, make_machine, make_scan_session):
        monkeypatch.setitem(app.config, "TRACKING_RETENTION_DAYS", 3)
        machine = make_machine()
        make_scan_session(machine, [("WO123-001-01-65A8", _day(0))])
        result = sweep_tracking_data(today=_day(4).date())
        assert result["retention_days"] == 3
        assert result["production_days"] == 1

    def test_old_fingerprints_are_dropped(self, make_machine, make_work_order):
        machine = make_machine()
        wo = make_work_order(operations=[[machine]])
        db.session.add_all([
            InvalidScanFingerprint(work_order_id=wo.id, barcode_id="OLD", scanned_at=_day(0),
                                   reason="invalid_format"),
            InvalidScanFingerprint(work_order_id=wo.id, barcode_id="NEW", scanned_at=_day(5),
                                   reason="invalid_format"),
        ])
        db.session.commit()

        result = sweep_tracking_data(retention_days=10, today=_day(12).date())

        assert result["invalid_scan_fingerprints"] == 1
        assert [fp.barcode_id for fp in InvalidScanFingerprint.query.all()] == ["NEW"]


class TestRetentionWindowCheck:
    def test_short_interval_passes(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert check_retention_window(120, 10) is True
        assert "retention" not in caplog.text

    def test_interval_too_long_for_window_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert check_retention_window(86400, 3) is False
        assert "retention window" in caplog.text

    def test_zero_day_window_warns(self):
        assert check_retention_window(60, 0) is False
