import enum
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Boolean, Enum, Float, Integer, String, Text, ForeignKey

from audit import AuditKind, AuditResult, LotMeasurements
from classifier import QualityBreakdown
from database import Base


class LotStage(str, enum.Enum):
    REGISTERED = "registered"
    TRANSPORT_RECORDED = "transport_recorded"
    RECEPTION_RECORDED = "reception_recorded"
    AUDITED = "audited"
    TRANSFERRED = "transferred"

    @property
    def rank(self) -> int:
        return list(LotStage).index(self)


class Lot(Base):
    __tablename__ = "lots"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    lot_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    variety: Mapped[str] = mapped_column(String(100))
    registered_by: Mapped[str] = mapped_column(String(100), index=True)
    registered_at: Mapped[str] = mapped_column(String(40))
    owner: Mapped[str] = mapped_column(String(100))
    stage: Mapped[LotStage] = mapped_column(Enum(LotStage), default=LotStage.REGISTERED)

    initial_weight: Mapped[float] = mapped_column(Float)
    final_weight_received: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_transport_temp_c: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # °C x100
    final_dry_matter_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    quality_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quality_conformant: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quality_minor_findings: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quality_not_admitted: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    audit_compliant: Mapped[bool] = mapped_column(Boolean, default=False)
    audit_kind: Mapped[AuditKind] = mapped_column(Enum(AuditKind), default=AuditKind.PENDING)
    audit_reason: Mapped[str] = mapped_column(String(255))
    audit_evaluated_at: Mapped[str] = mapped_column(String(40))

    events: Mapped[list["Event"]] = relationship("Event", back_populates="lot", cascade="all, delete-orphan")

    def measurements(self) -> LotMeasurements:
        return LotMeasurements(
            initial_weight=self.initial_weight,
            final_weight_received=self.final_weight_received,
            avg_transport_temp_c=self.avg_transport_temp_c,
            final_dry_matter_pct=self.final_dry_matter_pct,
        )

    @property
    def quality(self) -> Optional[QualityBreakdown]:
        if self.quality_total is None:
            return None
        return QualityBreakdown(
            total=self.quality_total,
            conformant=self.quality_conformant,
            minor_findings=self.quality_minor_findings,
            not_admitted=self.quality_not_admitted,
        )

    @quality.setter
    def quality(self, breakdown: QualityBreakdown) -> None:
        self.quality_total = breakdown.total
        self.quality_conformant = breakdown.conformant
        self.quality_minor_findings = breakdown.minor_findings
        self.quality_not_admitted = breakdown.not_admitted

    @property
    def audit(self) -> AuditResult:
        return AuditResult(
            compliant=self.audit_compliant,
            kind=self.audit_kind,
            reason=self.audit_reason,
            evaluated_at=self.audit_evaluated_at,
        )

    @audit.setter
    def audit(self, result: AuditResult) -> None:
        # replaced as a whole, never field by field
        self.audit_compliant = result.compliant
        self.audit_kind = result.kind
        self.audit_reason = result.reason
        self.audit_evaluated_at = result.evaluated_at

    def advance_to(self, stage: LotStage) -> None:
        if self.stage is None or stage.rank > self.stage.rank:
            self.stage = stage


class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # NULL for the threshold registry stream
    lot_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("lots.id"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(50))
    payload: Mapped[str] = mapped_column(Text)
    timestamp: Mapped[str] = mapped_column(String(40))
    prev_hash: Mapped[str] = mapped_column(String(128))
    hash: Mapped[str] = mapped_column(String(128))
    lot: Mapped[Optional[Lot]] = relationship("Lot", back_populates="events")


class ThresholdVersion(Base):
    __tablename__ = "threshold_versions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    version: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    max_transport_temp_c: Mapped[int] = mapped_column(Integer)
    max_weight_deviation_pct: Mapped[int] = mapped_column(Integer)
    min_dry_matter_pct: Mapped[int] = mapped_column(Integer)
    updated_by: Mapped[str] = mapped_column(String(100))
    updated_at: Mapped[str] = mapped_column(String(40))
