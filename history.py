"""
History aggregation for the reporting screens.

The status used here comes from the classifier counts, not from the
threshold audit: a lot can pass every threshold and still be a discard,
and the other way round. The two are reported side by side.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from audit import AuditKind
from classifier import QualityBreakdown
from utils import day_key, round_half_up

DISCARD_NOT_ADMITTED_PCT = 15
CRITICAL_NOT_ADMITTED_PCT = 20


class QualityStatus(str, Enum):
    DISCARD = "discard"
    FINDING = "finding"
    COMPLIANT = "compliant"
    PENDING = "pending"


@dataclass(frozen=True)
class TrendPoint:
    date: str
    avg_conformity_pct: float


@dataclass(frozen=True)
class HistorySummary:
    avg_conformity_pct: float = 0.0
    rejected_count: int = 0
    total_audited: int = 0
    trend_series: List[TrendPoint] = field(default_factory=list)
    breakdown_counts: Dict[str, int] = field(default_factory=lambda: _empty_breakdown())


def _empty_breakdown() -> Dict[str, int]:
    return {QualityStatus.DISCARD.value: 0, QualityStatus.FINDING.value: 0, QualityStatus.COMPLIANT.value: 0}


def quality_status(breakdown: Optional[QualityBreakdown]) -> QualityStatus:
    if breakdown is None:
        return QualityStatus.PENDING
    if breakdown.not_admitted_pct > DISCARD_NOT_ADMITTED_PCT:
        return QualityStatus.DISCARD
    if breakdown.not_admitted_pct > 0 or breakdown.minor_findings_pct > 0:
        return QualityStatus.FINDING
    return QualityStatus.COMPLIANT


def _conformity(lot) -> Decimal:
    q = lot.quality
    return Decimal(str(q.conformant_pct)) if q is not None else Decimal(0)


def summarize(lots: Iterable) -> HistorySummary:
    """Summary over lots exposing .quality and .registered_at; never divides by zero."""
    lots = list(lots)
    if not lots:
        return HistorySummary()

    breakdown = _empty_breakdown()
    total = Decimal(0)
    buckets: Dict[str, List[Decimal]] = {}
    for lot in lots:
        conformity = _conformity(lot)
        total += conformity
        status = quality_status(lot.quality)
        if status.value in breakdown:
            breakdown[status.value] += 1
        buckets.setdefault(day_key(lot.registered_at), []).append(conformity)

    return HistorySummary(
        avg_conformity_pct=round_half_up(total / len(lots), 1),
        rejected_count=breakdown[QualityStatus.DISCARD.value],
        total_audited=len(lots),
        trend_series=[TrendPoint(day, round_half_up(sum(vals) / len(vals), 1))
                      for day, vals in sorted(buckets.items())],
        breakdown_counts=breakdown,
    )


def dashboard_stats(lots: Iterable, events_recorded: int = 0) -> dict:
    lots = list(lots)
    critical = sum(1 for lot in lots
                   if lot.quality is not None and lot.quality.not_admitted_pct > CRITICAL_NOT_ADMITTED_PCT)
    compliant = sum(1 for lot in lots if lot.audit_kind == AuditKind.COMPLIANT)
    pending = sum(1 for lot in lots if lot.audit_kind == AuditKind.PENDING)
    return {
        "active_lots": len(lots),
        "critical_alerts": critical,
        "threshold_compliant": compliant,
        "threshold_non_compliant": len(lots) - compliant - pending,
        "pending_audit": pending,
        "events_recorded": events_recorded,
    }
