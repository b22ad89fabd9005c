import io
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, Response, Query, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sqlalchemy.orm import Session

import qrcode

import config
import lifecycle
import schemas
from audit import weight_deviation_pct
from database import Base, engine, SessionLocal
from errors import LotNotFound, TraceAuditError
from history import dashboard_stats, quality_status, summarize
from ingestion import parse_inspection_csv
from models import Lot
from thresholds import ThresholdRegistry
from utils import to_iso, utcnow_iso, verify_chain

# ---------- Logging ----------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("traceaudit")

@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        app.state.registry = lifecycle.load_registry(db)
    finally:
        db.close()
    logger.info("Thresholds in force: %s", app.state.registry.current())
    yield

app = FastAPI(title="Produce Lot Audit", version="0.2.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(TraceAuditError)
def domain_error_handler(request: Request, exc: TraceAuditError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# ---------- DB ----------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_registry(request: Request) -> ThresholdRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="threshold registry not loaded")
    return registry

# ---------- Serialization ----------
def _lot_summary(db: Session, lot: Lot) -> schemas.LotSummary:
    chain = lifecycle.event_chain(db, lot)
    quality = lot.quality
    deviation = None
    if lot.initial_weight and lot.final_weight_received:
        deviation = float(weight_deviation_pct(lot.initial_weight, lot.final_weight_received))

    return schemas.LotSummary(
        lot_id=lot.lot_id,
        variety=lot.variety,
        registered_by=lot.registered_by,
        registered_at=lot.registered_at,
        owner=lot.owner,
        stage=lot.stage.value,
        initial_weight=lot.initial_weight,
        final_weight_received=lot.final_weight_received,
        avg_transport_temp_c=lot.avg_transport_temp_c,
        final_dry_matter_pct=lot.final_dry_matter_pct,
        weight_deviation_pct=deviation,
        audit=schemas.AuditOut(
            compliant=lot.audit_compliant,
            kind=lot.audit_kind.value,
            reason=lot.audit_reason,
            evaluated_at=lot.audit_evaluated_at,
        ),
        quality=_quality_out(quality) if quality is not None else None,
        quality_status=quality_status(quality).value,
        total_events=len(chain),
        verified=verify_chain(chain),
        chain=chain,
    )

def _quality_out(q) -> schemas.QualityOut:
    return schemas.QualityOut(
        total=q.total,
        conformant=q.conformant,
        minor_findings=q.minor_findings,
        not_admitted=q.not_admitted,
        conformant_pct=q.conformant_pct,
        minor_findings_pct=q.minor_findings_pct,
        not_admitted_pct=q.not_admitted_pct,
        grade=q.grade,
        risk_score=q.risk_score,
        defects=[schemas.DefectOut(**asdict(d)) for d in q.defects],
    )

def _thresholds_out(registry: ThresholdRegistry) -> schemas.ThresholdsOut:
    return schemas.ThresholdsOut(owner=registry.owner, **registry.current().as_dict())

# ---------- APIs: health ----------
@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": utcnow_iso()}

# ---------- APIs: one lot ----------
@app.post("/api/lots", response_model=schemas.LotSummary)
def create_lot(body: schemas.CreateLot, db: Session = Depends(get_db)):
    lot = lifecycle.register_lot(db, body.lot_id, body.variety, body.initial_weight,
                                 body.registered_by, to_iso(body.registered_at))
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/transport", response_model=schemas.LotSummary)
def add_transport(lot_id: str, body: schemas.TransportRecord, db: Session = Depends(get_db),
                  registry: ThresholdRegistry = Depends(get_registry)):
    lot = lifecycle.record_transport(db, registry, lot_id, body.avg_transport_temp_c, to_iso(body.timestamp))
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/reception", response_model=schemas.LotSummary)
def add_reception(lot_id: str, body: schemas.ReceptionRecord, db: Session = Depends(get_db),
                  registry: ThresholdRegistry = Depends(get_registry)):
    lot = lifecycle.record_reception(db, registry, lot_id, body.final_weight_received, to_iso(body.timestamp))
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/packaging", response_model=schemas.LotSummary)
def add_packaging(lot_id: str, body: schemas.PackagingRecord, db: Session = Depends(get_db),
                  registry: ThresholdRegistry = Depends(get_registry)):
    lot = lifecycle.record_dry_matter(db, registry, lot_id, body.final_dry_matter_pct, to_iso(body.timestamp))
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/audit", response_model=schemas.LotSummary)
def run_audit(lot_id: str, body: Optional[schemas.AuditRequest] = None, db: Session = Depends(get_db),
              registry: ThresholdRegistry = Depends(get_registry)):
    body = body or schemas.AuditRequest()
    lot = lifecycle.audit_lot(db, registry, lot_id,
                              temp=body.avg_transport_temp_c,
                              weight=body.final_weight_received,
                              dry_matter=body.final_dry_matter_pct)
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/inspections", response_model=schemas.LotSummary)
def add_inspections(lot_id: str, body: schemas.InspectionBatch, db: Session = Depends(get_db)):
    lot = lifecycle.ingest_inspections(db, lot_id, [u.model_dump() for u in body.units], body.source)
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/inspections/csv", response_model=schemas.LotSummary)
def upload_inspections(lot_id: str, file: UploadFile = File(...), db: Session = Depends(get_db)):
    raw = file.file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="inspection file must be UTF-8 text")
    units = parse_inspection_csv(text)
    lot = lifecycle.ingest_inspections(db, lot_id, units, file.filename)
    return _lot_summary(db, lot)

@app.post("/api/lots/{lot_id}/transfer", response_model=schemas.TransferOut)
def transfer(lot_id: str, body: schemas.TransferRequest, db: Session = Depends(get_db)):
    lot, ev = lifecycle.transfer_ownership(db, lot_id, body.new_owner, body.amount_usd, body.actor)
    return schemas.TransferOut(
        lot_id=lot.lot_id,
        owner=lot.owner,
        amount_usd=body.amount_usd,
        transaction_hash=ev.hash,
        timestamp=ev.timestamp,
    )

@app.get("/api/lots/{lot_id}", response_model=schemas.LotSummary)
def get_lot_summary(lot_id: str, db: Session = Depends(get_db)):
    return _lot_summary(db, lifecycle.get_lot(db, lot_id))

@app.get("/api/lots/{lot_id}/verify")
def verify_lot(lot_id: str, db: Session = Depends(get_db)):
    chain = lifecycle.event_chain(db, lifecycle.get_lot(db, lot_id))
    return {"verified": verify_chain(chain), "events": len(chain)}

@app.get("/api/lots/{lot_id}/qrcode")
def lot_qrcode(lot_id: str, db: Session = Depends(get_db)):
    lifecycle.get_lot(db, lot_id)
    url = f"{config.BASE_URL}/api/lots/{lot_id}"
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")

# ---------- Lots listing & search ----------
@app.get("/api/lots", response_model=schemas.LotList)
def list_lots(
    q: Optional[str] = Query(None, description="search lot_id/variety/registered_by"),
    registered_by: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    rows, total = lifecycle.list_lots(db, q, registered_by, page, page_size)
    items = [schemas.LotBrief(
        lot_id=lot.lot_id,
        variety=lot.variety,
        registered_by=lot.registered_by,
        registered_at=lot.registered_at,
        stage=lot.stage.value,
        compliant=lot.audit_compliant,
        audit_kind=lot.audit_kind.value,
        quality_status=quality_status(lot.quality).value,
    ) for lot in rows]
    return schemas.LotList(items=items, total=total, page=page, page_size=page_size)

# ---------- Thresholds ----------
@app.get("/api/thresholds", response_model=schemas.ThresholdsOut)
def get_thresholds(registry: ThresholdRegistry = Depends(get_registry)):
    return _thresholds_out(registry)

@app.put("/api/thresholds", response_model=schemas.ThresholdsOut)
def put_thresholds(body: schemas.ThresholdUpdate, db: Session = Depends(get_db),
                   registry: ThresholdRegistry = Depends(get_registry)):
    lifecycle.update_thresholds(db, registry, body.max_transport_temp_c, body.max_weight_deviation_pct,
                                body.min_dry_matter_pct, body.actor)
    return _thresholds_out(registry)

@app.get("/api/thresholds/history")
def thresholds_history(db: Session = Depends(get_db)):
    chain = lifecycle.event_chain(db)
    return {"verified": verify_chain(chain), "events": chain}

# ---------- Reporting ----------
@app.get("/api/history/summary", response_model=schemas.HistorySummaryOut)
def history_summary(registered_by: Optional[str] = Query(None), db: Session = Depends(get_db)):
    rows, _ = lifecycle.list_lots(db, registered_by=registered_by)
    s = summarize(rows)
    return schemas.HistorySummaryOut(
        avg_conformity_pct=s.avg_conformity_pct,
        rejected_count=s.rejected_count,
        total_audited=s.total_audited,
        trend_series=[schemas.TrendPointOut(date=p.date, avg_conformity_pct=p.avg_conformity_pct)
                      for p in s.trend_series],
        breakdown_counts=s.breakdown_counts,
    )

@app.get("/api/dashboard/stats")
def dashboard(registered_by: Optional[str] = Query(None), db: Session = Depends(get_db)):
    rows, _ = lifecycle.list_lots(db, registered_by=registered_by)
    return dashboard_stats(rows, lifecycle.count_events(db))

@app.get("/api/traceability", response_model=schemas.TraceabilityOut)
def traceability(
    registered_by: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    events = lifecycle.traceability_feed(db, registered_by, limit)
    return schemas.TraceabilityOut(count=len(events), events=events)

# ---------- Demo data ----------
STATUS_WEIGHTS = {"OK": 80, "CONFORME": 5, "ALERTA": 6, "HALLAZGO": 3, "DESCARTE": 4, "NO_ADMITIDA": 2}

@app.get("/api/seed")
def seed(db: Session = Depends(get_db), registry: ThresholdRegistry = Depends(get_registry)):
    default_id = "PALTA-A-001"
    try:
        lifecycle.get_lot(db, default_id)
        return {"status": "exists", "lot_id": default_id}
    except LotNotFound:
        pass

    lifecycle.register_lot(db, default_id, "Hass", 1000.0, "productor1")
    lifecycle.record_transport(db, registry, default_id, 650)
    lifecycle.ingest_inspections(db, default_id, ["OK"] * 46 + ["ALERTA"] * 3 + ["DESCARTE"], "seed")
    lifecycle.record_reception(db, registry, default_id, 968.0)
    lifecycle.record_dry_matter(db, registry, default_id, 23.5)
    return {"status": "seeded", "lot_id": default_id}

@app.post("/api/seed_many")
def seed_many(n: int = 10, db: Session = Depends(get_db), registry: ThresholdRegistry = Depends(get_registry)):
    origins = ["Michoacan", "Jalisco", "Export", "Local"]
    growers = ["productor1", "productor2", "cooperativa"]
    statuses, weights = zip(*STATUS_WEIGHTS.items())

    created = 0
    today = datetime.now(timezone.utc)
    for i in range(1, n + 1):
        lot_id = f"PALTA-{i:03d}"
        try:
            lifecycle.get_lot(db, lot_id)
            continue
        except LotNotFound:
            pass

        registered_at = (today - timedelta(days=random.randint(0, 20))).isoformat()
        initial = float(random.randint(800, 1500))
        lifecycle.register_lot(db, lot_id, f"Hass ({random.choice(origins)})", initial,
                               random.choice(growers), registered_at)
        lifecycle.record_transport(db, registry, lot_id, random.randint(550, 900))
        lifecycle.ingest_inspections(db, lot_id, random.choices(statuses, weights, k=random.randint(20, 60)), "seed")
        lifecycle.record_reception(db, registry, lot_id, round(initial * random.uniform(0.9, 1.0), 1))
        if random.random() < 0.7:
            lifecycle.record_dry_matter(db, registry, lot_id, round(random.uniform(19, 27), 1))
        created += 1

    return {"status": "ok", "created": created}
