"""
Compliance audit engine.

A lot is checked against the registry thresholds in a fixed order:
transport temperature, weight deviation, then dry matter. The first failing
check decides the verdict. A check whose inputs are not yet known is skipped,
never failed.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from thresholds import Thresholds
from utils import from_centi, to_decimal, truncate, utcnow_iso

Number = Union[int, float, Decimal]

COMPLIANT_REASON = "Lot compliant. Meets all thresholds."
PENDING_REASON = "Pending audit"


class AuditKind(str, Enum):
    PENDING = "pending"
    TEMPERATURE_EXCEEDED = "temperature_exceeded"
    WEIGHT_DEVIATION_EXCEEDED = "weight_deviation_exceeded"
    DRY_MATTER_INSUFFICIENT = "dry_matter_insufficient"
    COMPLIANT = "compliant"


@dataclass(frozen=True)
class AuditResult:
    compliant: bool
    kind: AuditKind
    reason: str
    evaluated_at: str

    def as_payload(self) -> dict:
        return {
            "compliant": self.compliant,
            "kind": self.kind.value,
            "reason": self.reason,
            "timestamp": self.evaluated_at,
        }


@dataclass(frozen=True)
class LotMeasurements:
    """Values last stored on a lot; None means not measured yet."""
    initial_weight: Optional[float] = None
    final_weight_received: Optional[float] = None
    avg_transport_temp_c: Optional[int] = None  # °C x100
    final_dry_matter_pct: Optional[float] = None


def pending_result(evaluated_at: Optional[str] = None) -> AuditResult:
    return AuditResult(False, AuditKind.PENDING, PENDING_REASON, evaluated_at or utcnow_iso())


def weight_deviation_pct(initial_weight: Number, final_weight: Number) -> Decimal:
    """|initial - final| relative to the initial weight, truncated to two decimals."""
    initial = to_decimal(initial_weight)
    final = to_decimal(final_weight)
    return truncate(abs(initial - final) * 100 / initial)


def _positive(value: Optional[Number]) -> bool:
    return value is not None and value > 0


def evaluate(stored: LotMeasurements, thresholds: Thresholds,
             temp: Optional[int] = None,
             weight: Optional[Number] = None,
             dry_matter: Optional[Number] = None,
             evaluated_at: Optional[str] = None) -> AuditResult:
    """Audit one lot. Unset inputs fall back to the stored measurements."""
    ts = evaluated_at or utcnow_iso()
    temp = stored.avg_transport_temp_c if temp is None else temp
    weight = stored.final_weight_received if weight is None else weight
    dry_matter = stored.final_dry_matter_pct if dry_matter is None else dry_matter

    if temp is not None and temp > thresholds.max_transport_temp_c:
        return AuditResult(
            False, AuditKind.TEMPERATURE_EXCEEDED,
            f"Transport temperature exceeded: {from_centi(temp)}C "
            f"above maximum {from_centi(thresholds.max_transport_temp_c)}C.",
            ts,
        )

    if _positive(stored.initial_weight) and _positive(weight):
        deviation = weight_deviation_pct(stored.initial_weight, weight)
        if deviation > thresholds.max_weight_deviation_pct:
            return AuditResult(
                False, AuditKind.WEIGHT_DEVIATION_EXCEEDED,
                f"Weight deviation exceeded: {deviation}% "
                f"above maximum {thresholds.max_weight_deviation_pct}%.",
                ts,
            )

    if _positive(dry_matter) and to_decimal(dry_matter) < thresholds.min_dry_matter_pct:
        return AuditResult(
            False, AuditKind.DRY_MATTER_INSUFFICIENT,
            f"Dry matter insufficient: {dry_matter}% "
            f"below minimum {thresholds.min_dry_matter_pct}%.",
            ts,
        )

    return AuditResult(True, AuditKind.COMPLIANT, COMPLIANT_REASON, ts)
