"""Tests for the compliance audit engine."""

from decimal import Decimal

import pytest

from audit import (
    COMPLIANT_REASON,
    AuditKind,
    LotMeasurements,
    evaluate,
    pending_result,
    weight_deviation_pct,
)
from thresholds import Thresholds

LIMITS = Thresholds(max_transport_temp_c=800, max_weight_deviation_pct=5, min_dry_matter_pct=21)
TS = "2025-03-01T12:00:00+00:00"


def lot(**kwargs):
    values = {"initial_weight": 100.0}
    values.update(kwargs)
    return LotMeasurements(**values)


class TestTemperature:

    def test_above_maximum_fails(self):
        result = evaluate(lot(), LIMITS, temp=810)
        assert not result.compliant
        assert result.kind is AuditKind.TEMPERATURE_EXCEEDED
        assert "8.10C" in result.reason and "8.00C" in result.reason

    def test_boundary_is_exclusive(self):
        result = evaluate(lot(), LIMITS, temp=800)
        assert result.compliant
        assert result.kind is AuditKind.COMPLIANT

    def test_zero_degrees_is_a_measurement(self):
        assert evaluate(lot(), Thresholds(-100, 5, 21), temp=0).kind is AuditKind.TEMPERATURE_EXCEEDED

    def test_temperature_wins_over_other_failures(self):
        result = evaluate(lot(final_weight_received=50.0, final_dry_matter_pct=10.0), LIMITS, temp=900)
        assert result.kind is AuditKind.TEMPERATURE_EXCEEDED
        assert "Weight" not in result.reason and "Dry matter" not in result.reason


class TestWeightDeviation:

    def test_within_limit(self):
        assert evaluate(lot(), LIMITS, temp=750, weight=96).kind is AuditKind.COMPLIANT

    def test_exceeded(self):
        result = evaluate(lot(), LIMITS, temp=750, weight=90)
        assert not result.compliant
        assert result.kind is AuditKind.WEIGHT_DEVIATION_EXCEEDED
        assert "10.00%" in result.reason

    def test_deviation_equal_to_limit_passes(self):
        assert evaluate(lot(), LIMITS, weight=95).compliant

    def test_deviation_is_relative_to_initial_weight(self):
        assert weight_deviation_pct(100, 90) == Decimal("10.00")
        assert weight_deviation_pct(90, 100) == Decimal("11.11")
        assert weight_deviation_pct(100, 110) == Decimal("10.00")

    def test_deviation_is_truncated_to_two_decimals(self):
        assert weight_deviation_pct(3, 2) == Decimal("33.33")
        assert weight_deviation_pct(300, 294.985) == Decimal("1.67")

    def test_weight_gain_counts_as_deviation(self):
        result = evaluate(lot(), LIMITS, weight=106)
        assert result.kind is AuditKind.WEIGHT_DEVIATION_EXCEEDED

    @pytest.mark.parametrize("initial,final", [(0, 50), (100, None), (100, 0)])
    def test_skipped_without_both_weights(self, initial, final):
        result = evaluate(lot(initial_weight=initial), LIMITS, weight=final)
        assert result.compliant

    def test_weight_wins_over_dry_matter(self):
        result = evaluate(lot(final_dry_matter_pct=10.0), LIMITS, weight=80)
        assert result.kind is AuditKind.WEIGHT_DEVIATION_EXCEEDED


class TestDryMatter:

    def test_below_minimum_fails(self):
        result = evaluate(lot(), LIMITS, dry_matter=20.5)
        assert result.kind is AuditKind.DRY_MATTER_INSUFFICIENT
        assert "20.5%" in result.reason

    def test_minimum_is_inclusive(self):
        assert evaluate(lot(), LIMITS, dry_matter=21).compliant

    @pytest.mark.parametrize("dry_matter", [None, 0])
    def test_skipped_when_not_measured(self, dry_matter):
        assert evaluate(lot(), LIMITS, dry_matter=dry_matter).compliant


class TestResolution:

    def test_unset_inputs_use_stored_values(self):
        stored = lot(avg_transport_temp_c=850, final_weight_received=96.0, final_dry_matter_pct=22.0)
        assert evaluate(stored, LIMITS).kind is AuditKind.TEMPERATURE_EXCEEDED
        assert evaluate(stored, LIMITS, temp=700).kind is AuditKind.COMPLIANT

    def test_supplied_inputs_override_stored_values(self):
        stored = lot(avg_transport_temp_c=700, final_weight_received=96.0)
        assert evaluate(stored, LIMITS, weight=70).kind is AuditKind.WEIGHT_DEVIATION_EXCEEDED

    def test_nothing_measured_is_compliant(self):
        result = evaluate(LotMeasurements(), LIMITS)
        assert result.compliant
        assert result.reason == COMPLIANT_REASON

    def test_deterministic(self):
        stored = lot(avg_transport_temp_c=790, final_weight_received=93.0, final_dry_matter_pct=22.0)
        assert evaluate(stored, LIMITS, evaluated_at=TS) == evaluate(stored, LIMITS, evaluated_at=TS)

    def test_pending_result(self):
        result = pending_result(TS)
        assert not result.compliant
        assert result.kind is AuditKind.PENDING
        assert result.reason == "Pending audit"
        assert result.as_payload()["timestamp"] == TS
