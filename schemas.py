from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, Any, Dict, List

# ---------- Requests ----------
class CreateLot(BaseModel):
    lot_id: str = Field(..., min_length=1, max_length=64)
    variety: str
    initial_weight: float = Field(..., gt=0, description="kg")
    registered_by: str = Field(..., min_length=1)
    registered_at: Optional[datetime] = None  # defaults to now

class TransportRecord(BaseModel):
    avg_transport_temp_c: int = Field(..., description="average transport temperature, °C x100")
    timestamp: Optional[datetime] = None

class ReceptionRecord(BaseModel):
    final_weight_received: float = Field(..., ge=0, description="kg")
    timestamp: Optional[datetime] = None

class PackagingRecord(BaseModel):
    final_dry_matter_pct: float = Field(..., ge=0, le=100)
    timestamp: Optional[datetime] = None

class AuditRequest(BaseModel):
    avg_transport_temp_c: Optional[int] = None
    final_weight_received: Optional[float] = Field(None, ge=0)
    final_dry_matter_pct: Optional[float] = Field(None, ge=0, le=100)

class InspectionUnit(BaseModel):
    status: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

class InspectionBatch(BaseModel):
    units: List[InspectionUnit]
    source: Optional[str] = None

class TransferRequest(BaseModel):
    new_owner: str = Field(..., min_length=1)
    amount_usd: float = Field(..., ge=0)
    actor: Optional[str] = None

class ThresholdUpdate(BaseModel):
    max_transport_temp_c: int = Field(..., description="°C x100")
    max_weight_deviation_pct: int
    min_dry_matter_pct: int
    actor: str

# ---------- Responses ----------
class ThresholdsOut(BaseModel):
    max_transport_temp_c: int
    max_weight_deviation_pct: int
    min_dry_matter_pct: int
    version: int
    owner: str

class AuditOut(BaseModel):
    compliant: bool
    kind: str
    reason: str
    evaluated_at: str

class DefectOut(BaseModel):
    name: str
    count: int
    severity: str
    percentage_of_total: float

class QualityOut(BaseModel):
    total: int
    conformant: int
    minor_findings: int
    not_admitted: int
    conformant_pct: float
    minor_findings_pct: float
    not_admitted_pct: float
    grade: str
    risk_score: float
    defects: List[DefectOut]

class LotSummary(BaseModel):
    lot_id: str
    variety: str
    registered_by: str
    registered_at: str
    owner: str
    stage: str
    initial_weight: float
    final_weight_received: Optional[float] = None
    avg_transport_temp_c: Optional[int] = None
    final_dry_matter_pct: Optional[float] = None
    weight_deviation_pct: Optional[float] = None
    audit: AuditOut
    quality: Optional[QualityOut] = None
    quality_status: str
    total_events: int
    verified: bool
    chain: List[Dict[str, Any]]

class LotBrief(BaseModel):
    lot_id: str
    variety: str
    registered_by: str
    registered_at: str
    stage: str
    compliant: bool
    audit_kind: str
    quality_status: str

class LotList(BaseModel):
    items: List[LotBrief]
    total: int
    page: int
    page_size: int

class TransferOut(BaseModel):
    lot_id: str
    owner: str
    amount_usd: float
    transaction_hash: str
    timestamp: str

class TrendPointOut(BaseModel):
    date: str
    avg_conformity_pct: float

class HistorySummaryOut(BaseModel):
    avg_conformity_pct: float
    rejected_count: int
    total_audited: int
    trend_series: List[TrendPointOut]
    breakdown_counts: Dict[str, int]

class TraceEventOut(BaseModel):
    lot_id: str
    registered_by: str
    type: str
    timestamp: str
    hash: str
    payload: Dict[str, Any]

class TraceabilityOut(BaseModel):
    count: int
    events: List[TraceEventOut]
