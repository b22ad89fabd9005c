"""
Quality classifier: turns per-unit inspection records into aggregate counts.

Each unit carries a qualitative status as written by the packing-house
inspectors (Spanish or English codes). Unknown codes are counted as
conformant and logged; that lenient default is intentional.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from errors import EmptyBatchError
from utils import percentage, round_half_up

logger = logging.getLogger(__name__)

CONFORMANT_STATUSES = frozenset({"OK", "CONFORME"})
MINOR_FINDING_STATUSES = frozenset({"ALERTA", "HALLAZGO"})
NOT_ADMITTED_STATUSES = frozenset({"DESCARTE", "NO_ADMITIDA", "RECHAZADO"})

STATUS_KEYS = ("status", "CALIDAD_STATUS", "calidad_status")

# (minimum conformant %, grade), checked top-down
GRADES = (
    (95.0, "premium"),
    (85.0, "excellent"),
    (70.0, "good"),
    (50.0, "acceptable"),
)


@dataclass(frozen=True)
class Defect:
    name: str
    count: int
    severity: str
    percentage_of_total: float


@dataclass(frozen=True)
class QualityBreakdown:
    total: int
    conformant: int
    minor_findings: int
    not_admitted: int

    def __post_init__(self):
        counts = (self.total, self.conformant, self.minor_findings, self.not_admitted)
        if any(c < 0 for c in counts):
            raise ValueError("quality counts must be non-negative")
        if self.conformant + self.minor_findings + self.not_admitted != self.total:
            raise ValueError("quality counts do not add up to total")

    @property
    def conformant_pct(self) -> float:
        return percentage(self.conformant, self.total)

    @property
    def minor_findings_pct(self) -> float:
        return percentage(self.minor_findings, self.total)

    @property
    def not_admitted_pct(self) -> float:
        return percentage(self.not_admitted, self.total)

    @property
    def defects(self) -> List[Defect]:
        found = []
        if self.not_admitted > 0:
            found.append(Defect("Fruit not admitted", self.not_admitted,
                                "not_admitted", self.not_admitted_pct))
        if self.minor_findings > 0:
            found.append(Defect("Fruit with findings", self.minor_findings,
                                "finding", self.minor_findings_pct))
        return found

    @property
    def grade(self) -> str:
        score = self.conformant_pct
        for floor, label in GRADES:
            if score >= floor:
                return label
        return "rejected"

    @property
    def risk_score(self) -> float:
        """Weighted risk, 0 is clean; not-admitted fruit weighs four times a finding."""
        return round_half_up(self.minor_findings_pct * 0.5 + self.not_admitted_pct * 2, 1)


def unit_status(record: Any) -> str:
    """Normalized status of one unit record (str, mapping or object with .status)."""
    if isinstance(record, str):
        raw: Optional[str] = record
    elif isinstance(record, Mapping):
        raw = next((record[k] for k in STATUS_KEYS if record.get(k) is not None), None)
    else:
        raw = getattr(record, "status", None)
    status = (raw or "").strip().upper()
    return status or "OK"


def classify(records: Iterable[Any]) -> QualityBreakdown:
    conformant = minor = not_admitted = 0
    for record in records:
        status = unit_status(record)
        if status in CONFORMANT_STATUSES:
            conformant += 1
        elif status in MINOR_FINDING_STATUSES:
            minor += 1
        elif status in NOT_ADMITTED_STATUSES:
            not_admitted += 1
        else:
            logger.warning("Unrecognized unit status %r, counted as conformant", status)
            conformant += 1

    total = conformant + minor + not_admitted
    if total == 0:
        raise EmptyBatchError()
    return QualityBreakdown(total, conformant, minor, not_admitted)


def classify_or_default(records: Iterable[Any]) -> QualityBreakdown:
    """classify(), substituting one synthetic conformant unit for an empty batch."""
    try:
        return classify(records)
    except EmptyBatchError:
        logger.warning("Empty inspection batch, assuming a single conformant unit")
        return QualityBreakdown(total=1, conformant=1, minor_findings=0, not_admitted=0)
