"""Tests for history aggregation and the classifier-derived lot status."""

from types import SimpleNamespace

import pytest

from audit import AuditKind
from classifier import QualityBreakdown
from history import HistorySummary, QualityStatus, dashboard_stats, quality_status, summarize


def make_lot(day, conformant=0, findings=0, not_admitted=0, kind=AuditKind.COMPLIANT):
    total = conformant + findings + not_admitted
    quality = QualityBreakdown(total, conformant, findings, not_admitted) if total else None
    return SimpleNamespace(quality=quality, registered_at=f"{day}T09:30:00+00:00", audit_kind=kind)


class TestQualityStatus:

    @pytest.mark.parametrize("counts,expected", [
        ((84, 0, 16), QualityStatus.DISCARD),
        ((85, 0, 15), QualityStatus.FINDING),
        ((99, 1, 0), QualityStatus.FINDING),
        ((99, 0, 1), QualityStatus.FINDING),
        ((10, 0, 0), QualityStatus.COMPLIANT),
    ])
    def test_thresholds(self, counts, expected):
        c, f, n = counts
        assert quality_status(QualityBreakdown(c + f + n, c, f, n)) is expected

    def test_pending_without_classifier_output(self):
        assert quality_status(None) is QualityStatus.PENDING

    def test_independent_of_threshold_audit(self):
        discard = make_lot("2025-01-01", 80, 0, 20, kind=AuditKind.COMPLIANT)
        clean = make_lot("2025-01-01", 10, kind=AuditKind.TEMPERATURE_EXCEEDED)
        assert quality_status(discard.quality) is QualityStatus.DISCARD
        assert quality_status(clean.quality) is QualityStatus.COMPLIANT


class TestSummarize:

    def test_empty(self):
        summary = summarize([])
        assert summary == HistorySummary()
        assert summary.total_audited == 0
        assert summary.rejected_count == 0
        assert summary.trend_series == []
        assert summary.breakdown_counts == {"discard": 0, "finding": 0, "compliant": 0}

    def test_summary(self):
        lots = [
            make_lot("2025-01-03", 100),           # compliant, 100%
            make_lot("2025-01-01", 80, 0, 20),     # discard, 80%
            make_lot("2025-01-01", 90, 10, 0),     # finding, 90%
            make_lot("2025-01-02"),                # pending, counts as 0%
        ]
        summary = summarize(lots)
        assert summary.total_audited == 4
        assert summary.rejected_count == 1
        assert summary.avg_conformity_pct == 67.5
        assert summary.breakdown_counts == {"discard": 1, "finding": 1, "compliant": 1}
        assert [(p.date, p.avg_conformity_pct) for p in summary.trend_series] == [
            ("2025-01-01", 85.0),
            ("2025-01-02", 0.0),
            ("2025-01-03", 100.0),
        ]

    def test_averages_round_half_up(self):
        summary = summarize([make_lot("2025-02-01", 1, 399, 0)])
        # 1 of 400 units conformant: 0.25%
        assert summary.avg_conformity_pct == 0.3
        assert summary.trend_series[0].avg_conformity_pct == 0.3

    def test_accepts_trailing_z_timestamps(self):
        lot = SimpleNamespace(quality=None, registered_at="2025-05-10T23:59:59Z", audit_kind=AuditKind.PENDING)
        assert summarize([lot]).trend_series[0].date == "2025-05-10"

    def test_days_are_utc_days(self):
        late_in_lima = SimpleNamespace(quality=None, registered_at="2025-01-01T23:30:00-05:00",
                                       audit_kind=AuditKind.PENDING)
        assert summarize([late_in_lima]).trend_series[0].date == "2025-01-02"


def test_dashboard_stats():
    lots = [
        make_lot("2025-01-01", 70, 0, 30, kind=AuditKind.COMPLIANT),
        make_lot("2025-01-01", 100, kind=AuditKind.WEIGHT_DEVIATION_EXCEEDED),
        make_lot("2025-01-02", kind=AuditKind.PENDING),
    ]
    stats = dashboard_stats(lots, events_recorded=12)
    assert stats == {
        "active_lots": 3,
        "critical_alerts": 1,
        "threshold_compliant": 1,
        "threshold_non_compliant": 1,
        "pending_audit": 1,
        "events_recorded": 12,
    }
