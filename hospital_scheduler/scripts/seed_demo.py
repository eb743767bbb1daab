# hospital_scheduler/scripts/seed_demo.py
"""
Loads a small demo dataset and prints the next days' slots.

    python -m hospital_scheduler.scripts.seed_demo
"""
from datetime import timedelta

from sqlalchemy import select

from hospital_scheduler import models
from hospital_scheduler.database import SessionLocal, init_db
from hospital_scheduler.errors import SchedulerError
from hospital_scheduler.services.booking import book_appointment
from hospital_scheduler.services.slots import generate_slots
from hospital_scheduler.services.validation import facility_today

DEPARTMENTS = ["Cardiology", "Neurology", "Orthopedics", "Pediatrics"]

DOCTORS = [
    ("Dr. Alice Heart", "Cardiology", "+1-555-1000", "alice.heart@example.com"),
    ("Dr. Bob Brain", "Neurology", "+1-555-1001", "bob.brain@example.com"),
    ("Dr. Chris Bone", "Orthopedics", "+1-555-1002", "chris.bone@example.com"),
    ("Dr. Daisy Kids", "Pediatrics", "+1-555-1003", "daisy.kids@example.com"),
]

PATIENTS = [
    ("John Doe", "+1-555-0123", "john@example.com"),
    ("Jane Smith", "+1-555-0124", "jane@example.com"),
    ("Mike Johnson", "+1-555-0125", "mike@example.com"),
]

# (patient index, doctor index, days ahead, time, duration, notes)
APPOINTMENTS = [
    (0, 0, 1, "09:00", 30, "Initial consultation"),
    (1, 1, 1, "10:30", 30, "Neurology check-up"),
    (2, 2, 2, "11:00", 45, "Orthopedics follow-up"),
]


def seed(db):
    depts = {}
    for name in DEPARTMENTS:
        dept = db.scalar(select(models.Department).where(models.Department.name == name))
        if dept is None:
            dept = models.Department(name=name)
            db.add(dept)
        depts[name] = dept
    db.flush()

    doctors = []
    for full_name, dept_name, phone, email in DOCTORS:
        doc = db.scalar(select(models.Doctor).where(models.Doctor.full_name == full_name))
        if doc is None:
            doc = models.Doctor(full_name=full_name, department_id=depts[dept_name].id, phone=phone, email=email)
            db.add(doc)
        doctors.append(doc)

    patients = []
    for full_name, phone, email in PATIENTS:
        pat = db.scalar(select(models.Patient).where(models.Patient.phone == phone))
        if pat is None:
            pat = models.Patient(full_name=full_name, phone=phone, email=email)
            db.add(pat)
        patients.append(pat)
    db.commit()

    today = facility_today()
    for p, d, ahead, at, duration, notes in APPOINTMENTS:
        try:
            book_appointment(db, {
                "patient_id": patients[p].id,
                "doctor_id": doctors[d].id,
                "appointment_date": (today + timedelta(days=ahead)).isoformat(),
                "appointment_time": at,
                "duration_minutes": duration,
                "notes": notes,
            })
        except SchedulerError as e:
            # Already seeded on a previous run
            print(f"skip {doctors[d].full_name} {at}: {e.message}")
    return doctors


def show_slots(db, doctor, day):
    print(f"\n=== {doctor.full_name} | {day.isoformat()} ===")
    for s in generate_slots(db, doctor.id, day):
        print(" -", s.start.strftime("%H:%M"), "free" if s.available else "taken")


if __name__ == "__main__":
    init_db()
    db = SessionLocal()
    try:
        doctors = seed(db)
        today = facility_today()
        for doc in doctors[:2]:
            show_slots(db, doc, today + timedelta(days=1))
    finally:
        db.close()
