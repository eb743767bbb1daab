from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ..config import settings
from ..database import get_db
from .. import models, schemas
from ..services import booking
from ..services.registry import require
from ..services.schedule import appointment_stats, get_appointment, list_appointments
from ..services.slots import generate_slots
from ..services.validation import SLOT_QUERY_RULES, FieldRule, facility_today, validate_fields

router = APIRouter(prefix="", tags=["appointments"])

_DATE_FILTER = {"date": FieldRule("Date", kind="date")}


@router.get("/slots", response_model=schemas.SlotsResponse)
def get_slots(
    doctor_id: int = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    duration: Optional[int] = Query(None, description="Minutes; defaults to the grid step"),
    db: Session = Depends(get_db),
):
    q = validate_fields(
        {"doctor_id": doctor_id, "date": date, "duration_minutes": duration},
        SLOT_QUERY_RULES,
    )
    doctor = require(db, models.Doctor, q["doctor_id"], "doctor", "doctor_id")
    slots = generate_slots(db, doctor.id, q["date"], duration_minutes=q["duration_minutes"])
    return schemas.SlotsResponse(
        doctor_id=doctor.id,
        doctor_name=doctor.full_name,
        date=q["date"],
        duration_minutes=q["duration_minutes"] or settings.SLOT_MINUTES,
        slots=[schemas.SlotOut(time=s.start.strftime("%H:%M"), available=s.available) for s in slots],
    )


@router.post("/appointments", response_model=schemas.AppointmentOut, status_code=201)
def book(req: schemas.BookRequest, db: Session = Depends(get_db)):
    appt = booking.book_appointment(db, req.model_dump())
    return schemas.AppointmentOut.from_model(appt)


@router.post("/appointments/simple", response_model=schemas.AppointmentOut, status_code=201)
def book_walk_in(req: schemas.WalkInRequest, db: Session = Depends(get_db)):
    """Books the first free doctor of a department; registers the patient by phone if new."""
    appt = booking.book_walk_in(db, req.model_dump())
    return schemas.AppointmentOut.from_model(appt)


@router.get("/appointments", response_model=list[schemas.AppointmentOut])
def list_all(
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    status: Optional[models.AppointmentStatus] = None,
    db: Session = Depends(get_db),
):
    day = validate_fields({"date": date}, _DATE_FILTER)["date"]
    appts = list_appointments(db, doctor_id=doctor_id, patient_id=patient_id, day=day, status=status)
    return [schemas.AppointmentOut.from_model(a) for a in appts]


@router.get("/appointments/stats/overview", response_model=schemas.StatsResponse)
def stats_overview(db: Session = Depends(get_db)):
    return schemas.StatsResponse(**appointment_stats(db, facility_today()))


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentOut)
def get_one(appointment_id: int, db: Session = Depends(get_db)):
    return schemas.AppointmentOut.from_model(get_appointment(db, appointment_id))


@router.patch("/appointments/{appointment_id}/status", response_model=schemas.AppointmentOut)
def update_status(appointment_id: int, req: schemas.StatusRequest, db: Session = Depends(get_db)):
    appt = booking.change_status(db, appointment_id, req.status)
    return schemas.AppointmentOut.from_model(appt)


@router.put("/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentOut)
def reschedule(appointment_id: int, req: schemas.RescheduleRequest, db: Session = Depends(get_db)):
    appt = booking.reschedule_appointment(db, appointment_id, req.model_dump())
    return schemas.AppointmentOut.from_model(appt)


@router.delete("/appointments/{appointment_id}")
def delete(appointment_id: int, db: Session = Depends(get_db)):
    booking.delete_appointment(db, appointment_id)
    return {"ok": True, "appointment_id": appointment_id}
