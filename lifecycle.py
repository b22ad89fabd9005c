"""
Lot lifecycle: registration, transport, reception, packaging, audit, transfer.

Every write to a lot happens under that lot's lock and commits the lot
change together with its hash-chained events in one transaction.
"""
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

import config
from audit import AuditResult, evaluate, pending_result
from classifier import QualityBreakdown, classify, classify_or_default
from errors import DuplicateLot, LotNotFound
from models import Event, Lot, LotStage, ThresholdVersion
from thresholds import ThresholdRegistry, ThresholdsUpdated
from utils import GENESIS, compute_hash, utcnow_iso

logger = logging.getLogger(__name__)


class LotLocks:
    """One lock per lot_id, kept only while some caller holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # lot_id -> [lock, users]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, lot_id: str):
        with self._guard:
            entry = self._locks.setdefault(lot_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[lot_id]


lot_locks = LotLocks()


# ---------- Events ----------
def append_event(db: Session, ev_type: str, payload: dict, ts_iso: str, lot: Optional[Lot] = None) -> Event:
    """Add the next link of the lot's chain (or the registry chain when lot is None). Caller commits."""
    stream = Event.lot_id == lot.id if lot is not None else Event.lot_id.is_(None)
    prev = db.scalar(select(Event).where(stream).order_by(Event.id.desc()).limit(1))
    prev_hash = prev.hash if prev else GENESIS
    h = compute_hash(prev_hash, payload, ts_iso)
    ev = Event(
        lot_id=lot.id if lot is not None else None,
        type=ev_type,
        payload=json.dumps(payload),
        timestamp=ts_iso,
        prev_hash=prev_hash,
        hash=h,
    )
    db.add(ev)
    db.flush()
    return ev


def event_chain(db: Session, lot: Optional[Lot] = None) -> List[dict]:
    stream = Event.lot_id == lot.id if lot is not None else Event.lot_id.is_(None)
    events = db.scalars(select(Event).where(stream).order_by(Event.id.asc())).all()
    return [{
        "id": e.id,
        "type": e.type,
        "payload": json.loads(e.payload),
        "timestamp": e.timestamp,
        "prev_hash": e.prev_hash,
        "hash": e.hash,
    } for e in events]


# ---------- Queries ----------
def get_lot(db: Session, lot_id: str) -> Lot:
    lot = db.scalar(select(Lot).where(Lot.lot_id == lot_id))
    if lot is None:
        raise LotNotFound(lot_id)
    return lot


def list_lots(db: Session, q: Optional[str] = None, registered_by: Optional[str] = None,
              page: int = 1, page_size: Optional[int] = None) -> Tuple[List[Lot], int]:
    base = select(Lot)
    if q:
        like = f"%{q}%"
        base = base.where(
            (Lot.lot_id.ilike(like)) |
            (Lot.variety.ilike(like)) |
            (Lot.registered_by.ilike(like))
        )
    if registered_by:
        base = base.where(Lot.registered_by == registered_by)

    total = db.scalar(select(func.count()).select_from(base.subquery())) or 0
    stmt = base.order_by(Lot.id.desc())
    if page_size:
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    return list(db.scalars(stmt).all()), total


def count_events(db: Session) -> int:
    return db.scalar(select(func.count(Event.id))) or 0


def traceability_feed(db: Session, registered_by: Optional[str] = None,
                      limit: Optional[int] = None) -> List[dict]:
    """Lot events across lots, newest first; threshold events are not part of any lot."""
    stmt = select(Event, Lot).join(Lot, Event.lot_id == Lot.id)
    if registered_by:
        stmt = stmt.where(Lot.registered_by == registered_by)
    stmt = stmt.order_by(Event.timestamp.desc(), Event.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return [{
        "lot_id": lot.lot_id,
        "registered_by": lot.registered_by,
        "type": e.type,
        "timestamp": e.timestamp,
        "hash": e.hash,
        "payload": json.loads(e.payload),
    } for e, lot in db.execute(stmt).all()]


# ---------- Audit ----------
def _apply_audit(db: Session, lot: Lot, registry: ThresholdRegistry,
                 temp: Optional[int] = None, weight: Optional[float] = None,
                 dry_matter: Optional[float] = None) -> AuditResult:
    thresholds = registry.current()
    result = evaluate(lot.measurements(), thresholds, temp=temp, weight=weight, dry_matter=dry_matter)
    lot.audit = result
    lot.advance_to(LotStage.AUDITED)
    payload = {"lot_id": lot.lot_id, "thresholds_version": thresholds.version}
    payload.update(result.as_payload())
    append_event(db, "lot_audited", payload, result.evaluated_at, lot)
    log = logger.info if result.compliant else logger.warning
    log("Lot %s audited: %s (%s)", lot.lot_id, result.kind.value, result.reason)
    return result


def audit_lot(db: Session, registry: ThresholdRegistry, lot_id: str,
              temp: Optional[int] = None, weight: Optional[float] = None,
              dry_matter: Optional[float] = None) -> Lot:
    """Evaluate a lot; supplied measurements are stored before the result."""
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        if temp is not None:
            lot.avg_transport_temp_c = temp
        if weight is not None:
            lot.final_weight_received = weight
        if dry_matter is not None:
            lot.final_dry_matter_pct = dry_matter
        _apply_audit(db, lot, registry)
        db.commit()
        db.refresh(lot)
        return lot


# ---------- Lifecycle ----------
def register_lot(db: Session, lot_id: str, variety: str, initial_weight: float,
                 registered_by: str, registered_at: Optional[str] = None) -> Lot:
    with lot_locks.hold(lot_id):
        if db.scalar(select(Lot.id).where(Lot.lot_id == lot_id)) is not None:
            logger.warning("Rejected duplicate registration of %s by %s", lot_id, registered_by)
            raise DuplicateLot(lot_id)
        ts = registered_at or utcnow_iso()
        lot = Lot(
            lot_id=lot_id,
            variety=variety,
            registered_by=registered_by,
            registered_at=ts,
            owner=registered_by,
            stage=LotStage.REGISTERED,
            initial_weight=initial_weight,
        )
        lot.audit = pending_result(ts)
        db.add(lot)
        db.flush()
        append_event(db, "lot_registered", {
            "lot_id": lot_id,
            "variety": variety,
            "initial_weight": initial_weight,
            "registered_by": registered_by,
        }, ts, lot)
        db.commit()
        db.refresh(lot)
    logger.info("Lot %s registered by %s (%s, %s kg)", lot_id, registered_by, variety, initial_weight)
    return lot


def record_transport(db: Session, registry: ThresholdRegistry, lot_id: str, avg_temp_c: int,
                     ts: Optional[str] = None) -> Lot:
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        lot.avg_transport_temp_c = avg_temp_c
        lot.advance_to(LotStage.TRANSPORT_RECORDED)
        append_event(db, "transport_recorded",
                     {"lot_id": lot_id, "avg_transport_temp_c": avg_temp_c}, ts or utcnow_iso(), lot)
        if config.AUDIT_ON_TRANSPORT:
            _apply_audit(db, lot, registry)
        db.commit()
        db.refresh(lot)
    logger.info("Lot %s transport recorded: %s (x100 C)", lot_id, avg_temp_c)
    return lot


def record_reception(db: Session, registry: ThresholdRegistry, lot_id: str, final_weight: float,
                     ts: Optional[str] = None) -> Lot:
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        lot.final_weight_received = final_weight
        lot.advance_to(LotStage.RECEPTION_RECORDED)
        append_event(db, "reception_recorded",
                     {"lot_id": lot_id, "final_weight_received": final_weight}, ts or utcnow_iso(), lot)
        _apply_audit(db, lot, registry, temp=lot.avg_transport_temp_c, weight=final_weight)
        db.commit()
        db.refresh(lot)
    logger.info("Lot %s reception recorded: %s kg", lot_id, final_weight)
    return lot


def record_dry_matter(db: Session, registry: ThresholdRegistry, lot_id: str, dry_matter_pct: float,
                      ts: Optional[str] = None) -> Lot:
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        lot.final_dry_matter_pct = dry_matter_pct
        append_event(db, "dry_matter_recorded",
                     {"lot_id": lot_id, "final_dry_matter_pct": dry_matter_pct}, ts or utcnow_iso(), lot)
        _apply_audit(db, lot, registry)
        db.commit()
        db.refresh(lot)
    logger.info("Lot %s dry matter recorded: %s%%", lot_id, dry_matter_pct)
    return lot


def ingest_inspections(db: Session, lot_id: str, records: Iterable[Any], source: Optional[str] = None) -> Lot:
    records = list(records)
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        breakdown: QualityBreakdown = classify(records) if config.STRICT_EMPTY_BATCH else classify_or_default(records)
        lot.quality = breakdown
        append_event(db, "quality_ingested", {
            "lot_id": lot_id,
            "source": source,
            "units_received": len(records),
            "total": breakdown.total,
            "conformant": breakdown.conformant,
            "minor_findings": breakdown.minor_findings,
            "not_admitted": breakdown.not_admitted,
        }, utcnow_iso(), lot)
        db.commit()
        db.refresh(lot)
    logger.info("Lot %s quality ingested: %d units, %.2f%% conformant",
                lot_id, breakdown.total, breakdown.conformant_pct)
    return lot


def transfer_ownership(db: Session, lot_id: str, new_owner: str, amount_usd: float,
                       actor: Optional[str] = None) -> Tuple[Lot, Event]:
    """Hand the lot to a new owner. The audit verdict is neither checked nor changed."""
    with lot_locks.hold(lot_id):
        lot = get_lot(db, lot_id)
        previous = lot.owner
        lot.owner = new_owner
        lot.advance_to(LotStage.TRANSFERRED)
        ev = append_event(db, "ownership_transferred", {
            "lot_id": lot_id,
            "from": previous,
            "to": new_owner,
            "amount_usd": amount_usd,
            "actor": actor or previous,
            "compliant_at_transfer": lot.audit_compliant,
        }, utcnow_iso(), lot)
        db.commit()
        db.refresh(lot)
        db.refresh(ev)
    logger.info("Lot %s transferred from %s to %s for %.2f USD", lot_id, previous, new_owner, amount_usd)
    return lot, ev


# ---------- Threshold registry persistence ----------
def load_registry(db: Session, owner: Optional[str] = None) -> ThresholdRegistry:
    """Latest stored threshold version, or a fresh version 1 from configuration."""
    owner = owner or config.ADMIN_USER
    row = db.scalar(select(ThresholdVersion).order_by(ThresholdVersion.version.desc()).limit(1))
    if row is not None:
        return ThresholdRegistry.initialize(owner, row.max_transport_temp_c, row.max_weight_deviation_pct,
                                            row.min_dry_matter_pct, version=row.version)

    registry = ThresholdRegistry.initialize(owner, config.DEFAULT_MAX_TRANSPORT_TEMP_C,
                                            config.DEFAULT_MAX_WEIGHT_DEVIATION_PCT,
                                            config.DEFAULT_MIN_DRY_MATTER_PCT)
    current = registry.current()
    ts = utcnow_iso()
    _store_thresholds(db, ThresholdsUpdated(actor=owner, thresholds=current, timestamp=ts), "thresholds_initialized")
    db.commit()
    return registry


def _store_thresholds(db: Session, event: ThresholdsUpdated, ev_type: str) -> None:
    t = event.thresholds
    db.add(ThresholdVersion(
        version=t.version,
        max_transport_temp_c=t.max_transport_temp_c,
        max_weight_deviation_pct=t.max_weight_deviation_pct,
        min_dry_matter_pct=t.min_dry_matter_pct,
        updated_by=event.actor,
        updated_at=event.timestamp,
    ))
    append_event(db, ev_type, event.as_payload(), event.timestamp)


def update_thresholds(db: Session, registry: ThresholdRegistry, max_transport_temp_c: int,
                      max_weight_deviation_pct: int, min_dry_matter_pct: int, actor: str) -> ThresholdsUpdated:
    def persist(event: ThresholdsUpdated) -> None:
        try:
            _store_thresholds(db, event, "thresholds_updated")
            db.commit()
        except Exception:
            db.rollback()
            raise

    return registry.update(max_transport_temp_c, max_weight_deviation_pct, min_dry_matter_pct,
                           actor, persist=persist)
