# hospital_scheduler/routers/admin.py
from __future__ import annotations
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from .. import models, schemas
from ..jobs.scheduler import run_cleanup
from ..services.schedule import list_appointments, storage_guard
from ..services.validation import FieldRule, validate_fields

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

_DATE_RULE = {"date": FieldRule("Date", kind="date", required=True)}


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _require_admin(x_admin_token: str | None) -> None:
    expected = (settings.ADMIN_TOKEN or "").strip()
    provided = (x_admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=403, detail="ADMIN_TOKEN not configured")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Invalid token")


# ──────────────────────────────────────────────────────────────────────────────
# Basics
# (main.py mounts this router with prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/ping")
def admin_ping():
    return {"ok": True, "ts": datetime.utcnow().isoformat()}


@router.get("/health")
def admin_health(db: Session = Depends(get_db)):
    with storage_guard("health"):
        db.execute(text("SELECT 1"))
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "database": db.get_bind().dialect.name,
        "ts": datetime.utcnow().isoformat(),
    }


# ──────────────────────────────────────────────────────────────────────────────
# DB utilities
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/db/appointments")
def admin_db_appointments(
    x_admin_token: str | None = Header(default=None),
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    """
    Every appointment on the given day, cancelled ones included.
    Useful to explain why a slot shows as taken (or free).
    """
    _require_admin(x_admin_token)
    day = validate_fields({"date": date}, _DATE_RULE)["date"]
    items = [schemas.AppointmentOut.from_model(a) for a in list_appointments(db, day=day)]
    items.sort(key=lambda a: (a.doctor_id, a.appointment_time))
    return {"ok": True, "date": day.isoformat(), "count": len(items), "appointments": items}


@router.post("/db/purge_cancelled")
def admin_purge_cancelled(
    x_admin_token: str | None = Header(default=None),
    retention_days: int = Query(default=settings.CANCELLED_RETENTION_DAYS, ge=0, le=3650),
    db: Session = Depends(get_db),
):
    """
    Runs the nightly maintenance now: removes cancelled appointments older
    than ``retention_days`` and lock rows for past days.
    """
    _require_admin(x_admin_token)
    logger.info("Admin-triggered cleanup, retention_days=%s", retention_days)
    return {"ok": True, **run_cleanup(db, retention_days)}


@router.get("/db/locks")
def admin_db_locks(
    x_admin_token: str | None = Header(default=None),
    doctor_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """Booking-write counters per day for one doctor."""
    _require_admin(x_admin_token)
    with storage_guard("admin_db_locks"):
        rows = (
            db.query(models.ScheduleLock)
            .filter(models.ScheduleLock.doctor_id == doctor_id)
            .order_by(models.ScheduleLock.day.asc())
            .all()
        )
    return {
        "ok": True,
        "doctor_id": doctor_id,
        "days": [{"day": r.day.isoformat(), "version": r.version} for r in rows],
    }
