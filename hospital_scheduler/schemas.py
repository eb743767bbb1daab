from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Optional

from .models import AppointmentStatus
from .services.intervals import Interval


# ===== Registration =====
class DepartmentIn(BaseModel):
    name: str


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class DoctorIn(BaseModel):
    full_name: str
    department_id: Optional[int] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class DoctorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    department_id: Optional[int] = None
    department_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_model(cls, doctor) -> "DoctorOut":
        return cls(
            id=doctor.id,
            full_name=doctor.full_name,
            department_id=doctor.department_id,
            department_name=doctor.department.name if doctor.department else None,
            phone=doctor.phone,
            email=doctor.email,
        )


class PatientIn(BaseModel):
    full_name: str
    phone: str
    email: Optional[str] = None


class PatientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    phone: str
    email: Optional[str] = None


# ===== Appointments =====
# Times travel as strings ("HH:MM"); the core's field rules parse and bound them.
class BookRequest(BaseModel):
    patient_id: int
    doctor_id: int
    appointment_date: str
    appointment_time: str
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None


class WalkInRequest(BaseModel):
    full_name: str
    phone: str
    department: str
    appointment_date: str
    appointment_time: str


class RescheduleRequest(BaseModel):
    appointment_date: str
    appointment_time: str
    duration_minutes: Optional[int] = None


class StatusRequest(BaseModel):
    status: AppointmentStatus


class AppointmentOut(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    appointment_time: str
    end_time: str
    duration_minutes: int
    status: str
    notes: str
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    doctor_name: Optional[str] = None
    department_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, appt) -> "AppointmentOut":
        doctor = appt.doctor
        return cls(
            id=appt.id,
            patient_id=appt.patient_id,
            doctor_id=appt.doctor_id,
            appointment_date=appt.appointment_date,
            appointment_time=appt.appointment_time.strftime("%H:%M"),
            end_time=_hhmm(Interval.of(appt).end_minute),
            duration_minutes=appt.duration_minutes,
            status=appt.status.value,
            notes=appt.notes or "",
            patient_name=appt.patient.full_name if appt.patient else None,
            patient_phone=appt.patient.phone if appt.patient else None,
            doctor_name=doctor.full_name if doctor else None,
            department_name=doctor.department.name if doctor and doctor.department else None,
            created_at=appt.created_at,
            updated_at=appt.updated_at,
        )


def _hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class SlotOut(BaseModel):
    time: str
    available: bool


class SlotsResponse(BaseModel):
    doctor_id: int
    doctor_name: str
    date: date
    duration_minutes: int
    slots: list[SlotOut]


class StatsResponse(BaseModel):
    total: int
    today: int
    byStatus: dict[str, int]
