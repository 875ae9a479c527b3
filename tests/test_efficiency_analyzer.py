"""
Tests for the efficiency & timing analyzer.

Covers:
    - intervals between consecutive scans; breaks of 30 minutes or more dropped
    - efficiency against planned / estimated time, capped at 200%
    - utilization over session time
    - pooling of intervals across sessions
    - unit completion times per machine × operation
    - halves round up in averages and completion times
"""

from datetime import datetime, timedelta, timezone

from scantrack.services.barcode_codec import encode
from scantrack.services.efficiency_analyzer import (
    BREAK_THRESHOLD_SECONDS,
    analyze,
    efficiency_percentage,
    session_intervals,
    unit_completion_times,
)
from scantrack.services.scan_validator import ValidScan, validate_scans
from scantrack.utils.helpers import round_half_up

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _at(seconds):
    return T0 + timedelta(seconds=seconds)


def _valid_scan(unit, seconds):
    return ValidScan(
        barcode_id=encode("WO123", unit, 1),
        unit=unit,
        operation=1,
        scanned_at=_at(seconds),
        machine_id=1,
        machine_name="Machine 1",
        operator_id="OP-1",
        operator_name="Operator OP-1",
        session_id=1,
    )


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 1: Intervals & efficiency
# ═════════════════════════════════════════════════════════════════════════════


class TestIntervals:
    def test_gaps_between_consecutive_scans(self):
        scans = [_valid_scan(1, 0), _valid_scan(2, 90), _valid_scan(3, 200)]
        assert session_intervals(scans) == [90, 110]

    def test_break_threshold_is_exclusive(self):
        scans = [
            _valid_scan(1, 0),
            _valid_scan(2, BREAK_THRESHOLD_SECONDS - 1),
            _valid_scan(3, 2 * BREAK_THRESHOLD_SECONDS - 1),
        ]
        assert session_intervals(scans) == [BREAK_THRESHOLD_SECONDS - 1]

    def test_unordered_scans_are_sorted(self):
        scans = [_valid_scan(2, 120), _valid_scan(1, 0)]
        assert session_intervals(scans) == [120]

    def test_single_scan_has_no_intervals(self):
        assert session_intervals([_valid_scan(1, 0)]) == []

    def test_efficiency_percentage(self):
        assert efficiency_percentage(60, 120) == 50.0
        assert efficiency_percentage(60, 60) == 100.0
        assert efficiency_percentage(600, 60) == 200.0
        assert efficiency_percentage(0, 60) == 0.0
        assert efficiency_percentage(60, 0) == 0.0


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 2: Operator metrics
# ═════════════════════════════════════════════════════════════════════════════


class TestOperatorMetrics:
    def test_outlier_break_is_trimmed(self, make_plan, make_record):
        plan = make_plan(quantity=5, operations=((1,),), estimated_time_seconds=60)
        records = [
            make_record(encode("WO123", 1, 1), _at(0), signed_out_at=_at(3600)),
            make_record(encode("WO123", 2, 1), _at(120), signed_out_at=_at(3600)),
            make_record(encode("WO123", 3, 1), _at(240), signed_out_at=_at(3600)),
            make_record(encode("WO123", 4, 1), _at(2400), signed_out_at=_at(3600)),
        ]
        result = analyze(validate_scans(records, plan), plan)

        assert len(result.efficiency_metrics) == 1
        metric = result.efficiency_metrics[0]
        assert metric.avg_time_per_unit == 120
        assert metric.efficiency_percentage == 50.0
        assert metric.total_productive_time == 240
        assert metric.total_session_time == 3600
        assert metric.utilization_rate == 6.67
        assert metric.units_scanned == 4
        assert metric.session_count == 1

    def test_planned_time_is_preferred_target(self, make_plan, make_record):
        plan = make_plan(operations=((1,),), estimated_time_seconds=60, planned_time_seconds=90)
        records = [make_record(encode("WO123", u, 1), _at(i * 90)) for i, u in enumerate((1, 2, 3))]
        metric = analyze(validate_scans(records, plan), plan).efficiency_metrics[0]
        assert metric.efficiency_percentage == 100.0
        assert metric.planned_time_per_unit == 90

    def test_efficiency_capped_at_200(self, make_plan, make_record):
        plan = make_plan(operations=((1,),), estimated_time_seconds=600)
        records = [make_record(encode("WO123", u, 1), _at(i * 60)) for i, u in enumerate((1, 2, 3))]
        metric = analyze(validate_scans(records, plan), plan).efficiency_metrics[0]
        assert metric.efficiency_percentage == 200.0

    def test_intervals_pooled_across_sessions(self, make_plan, make_record):
        plan = make_plan(quantity=4, operations=((1,),), estimated_time_seconds=120)
        records = [
            make_record(encode("WO123", 1, 1), _at(0), session_id=1, signed_in_at=_at(0), signed_out_at=_at(600)),
            make_record(encode("WO123", 2, 1), _at(60), session_id=1, signed_in_at=_at(0), signed_out_at=_at(600)),
            make_record(encode("WO123", 3, 1), _at(6000), session_id=2, signed_in_at=_at(6000), signed_out_at=_at(6600)),
            make_record(encode("WO123", 4, 1), _at(6180), session_id=2, signed_in_at=_at(6000), signed_out_at=_at(6600)),
        ]
        metric = analyze(validate_scans(records, plan), plan).efficiency_metrics[0]
        assert metric.session_count == 2
        assert metric.avg_time_per_unit == 120
        assert metric.efficiency_percentage == 100.0
        assert metric.total_session_time == 1200
        assert metric.utilization_rate == 20.0

    def test_single_scan_gives_zero_efficiency(self, make_plan, make_record):
        plan = make_plan(operations=((1,),))
        metric = analyze(validate_scans([make_record(encode("WO123", 1, 1), _at(30))], plan), plan).efficiency_metrics[0]
        assert metric.avg_time_per_unit == 0
        assert metric.efficiency_percentage == 0.0
        assert metric.utilization_rate == 0.0

    def test_operator_details_list_sessions(self, make_plan, make_record):
        plan = make_plan(operations=((1,),))
        records = [
            make_record(encode("WO123", 1, 1), _at(0), operator_id="OP-1", session_id=1),
            make_record(encode("WO123", 2, 1), _at(60), operator_id="OP-2", session_id=2),
        ]
        details = analyze(validate_scans(records, plan), plan).operator_details
        assert [d.operator_id for d in details] == ["OP-1", "OP-2"]
        assert details[0].to_dict()["sessions"][0]["scan_count"] == 1
        assert details[0].to_dict()["sessions"][0]["signed_in_at"] == T0.isoformat()


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 3: Machine timing
# ═════════════════════════════════════════════════════════════════════════════


class TestTimeMetrics:
    def test_single_scan_unit_uses_estimate(self):
        scans = [_valid_scan(1, 0), _valid_scan(1, 300), _valid_scan(2, 400)]
        assert unit_completion_times(scans, 60) == [300, 60]

    def test_time_metric_per_machine(self, make_plan, make_record):
        plan = make_plan(operations=((1,),), estimated_time_seconds=60, planned_time_seconds=240)
        records = [
            make_record(encode("WO123", 1, 1), _at(0)),
            make_record(encode("WO123", 1, 1), _at(300)),
            make_record(encode("WO123", 2, 1), _at(400)),
        ]
        result = analyze(validate_scans(records, plan), plan)
        assert len(result.time_metrics) == 1
        metric = result.time_metrics[0].to_dict()
        assert metric["avg_completion_time_seconds"] == 180
        assert metric["min_completion_time_seconds"] == 60
        assert metric["max_completion_time_seconds"] == 300
        assert metric["total_units_analyzed"] == 2
        assert metric["planned_time_seconds"] == 240

    def test_no_valid_scans_no_metrics(self, make_plan):
        plan = make_plan()
        result = analyze(validate_scans([], plan), plan)
        assert result.efficiency_metrics == []
        assert result.time_metrics == []
        assert result.operator_details == []


# ═════════════════════════════════════════════════════════════════════════════
# TEST CLASS 4: Rounding of halves
# ═════════════════════════════════════════════════════════════════════════════


class TestHalfRounding:
    def test_avg_time_per_unit_rounds_half_up(self, make_plan, make_record):
        plan = make_plan(quantity=3, operations=((1,),), estimated_time_seconds=60)
        records = [make_record(encode("WO123", u, 1), _at(s)) for u, s in ((1, 0), (2, 2), (3, 5))]
        metric = analyze(validate_scans(records, plan), plan).efficiency_metrics[0]

        assert metric.avg_time_per_unit == 3
        assert metric.total_productive_time == 5

    def test_completion_times_round_half_up(self, make_plan, make_record):
        plan = make_plan(quantity=2, operations=((1,),), estimated_time_seconds=60)
        records = [
            make_record(encode("WO123", 1, 1), _at(0)),
            make_record(encode("WO123", 1, 1), _at(2)),
            make_record(encode("WO123", 2, 1), _at(10)),
            make_record(encode("WO123", 2, 1), _at(13)),
        ]
        metric = analyze(validate_scans(records, plan), plan).time_metrics[0].to_dict()

        assert metric["avg_completion_time_seconds"] == 3
        assert metric["min_completion_time_seconds"] == 2
        assert metric["max_completion_time_seconds"] == 3

    def test_round_half_up_helper(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(12.5) == 13
        assert round_half_up(-2.5) == -2
        assert round_half_up(0.125, 2) == 0.13
