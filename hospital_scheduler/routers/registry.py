from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from .. import models, schemas
from ..services import registry
from ..services.registry import require

router = APIRouter(prefix="", tags=["registry"])


# ──────────────────────────────────────────────────────────────────────────────
# Departments
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/departments", response_model=list[schemas.DepartmentOut])
def list_departments(db: Session = Depends(get_db)):
    return registry.list_departments(db)


@router.get("/departments/{department_id}", response_model=schemas.DepartmentOut)
def get_department(department_id: int, db: Session = Depends(get_db)):
    return require(db, models.Department, department_id, "department", "department_id")


@router.post("/departments", response_model=schemas.DepartmentOut, status_code=201)
def create_department(req: schemas.DepartmentIn, db: Session = Depends(get_db)):
    return registry.create_department(db, req.model_dump())


@router.put("/departments/{department_id}", response_model=schemas.DepartmentOut)
def update_department(department_id: int, req: schemas.DepartmentIn, db: Session = Depends(get_db)):
    return registry.update_department(db, department_id, req.model_dump())


@router.delete("/departments/{department_id}")
def delete_department(department_id: int, db: Session = Depends(get_db)):
    registry.delete_department(db, department_id)
    return {"ok": True, "department_id": department_id}


# ──────────────────────────────────────────────────────────────────────────────
# Doctors
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/doctors", response_model=list[schemas.DoctorOut])
def list_doctors(department_id: Optional[int] = None, db: Session = Depends(get_db)):
    return [schemas.DoctorOut.from_model(d) for d in registry.list_doctors(db, department_id)]


@router.get("/doctors/{doctor_id}", response_model=schemas.DoctorOut)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    return schemas.DoctorOut.from_model(require(db, models.Doctor, doctor_id, "doctor", "doctor_id"))


@router.post("/doctors", response_model=schemas.DoctorOut, status_code=201)
def create_doctor(req: schemas.DoctorIn, db: Session = Depends(get_db)):
    return schemas.DoctorOut.from_model(registry.create_doctor(db, req.model_dump()))


@router.put("/doctors/{doctor_id}", response_model=schemas.DoctorOut)
def update_doctor(doctor_id: int, req: schemas.DoctorIn, db: Session = Depends(get_db)):
    return schemas.DoctorOut.from_model(registry.update_doctor(db, doctor_id, req.model_dump()))


@router.delete("/doctors/{doctor_id}")
def delete_doctor(doctor_id: int, db: Session = Depends(get_db)):
    registry.delete_doctor(db, doctor_id)
    return {"ok": True, "doctor_id": doctor_id}


# ──────────────────────────────────────────────────────────────────────────────
# Patients
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/patients", response_model=list[schemas.PatientOut])
def list_patients(search: Optional[str] = None, phone: Optional[str] = None, db: Session = Depends(get_db)):
    return registry.list_patients(db, search=search, phone=phone)


@router.get("/patients/{patient_id}", response_model=schemas.PatientOut)
def get_patient(patient_id: int, db: Session = Depends(get_db)):
    return require(db, models.Patient, patient_id, "patient", "patient_id")


@router.post("/patients", response_model=schemas.PatientOut, status_code=201)
def create_patient(req: schemas.PatientIn, db: Session = Depends(get_db)):
    return registry.create_patient(db, req.model_dump())


@router.put("/patients/{patient_id}", response_model=schemas.PatientOut)
def update_patient(patient_id: int, req: schemas.PatientIn, db: Session = Depends(get_db)):
    return registry.update_patient(db, patient_id, req.model_dump())


@router.delete("/patients/{patient_id}")
def delete_patient(patient_id: int, db: Session = Depends(get_db)):
    registry.delete_patient(db, patient_id)
    return {"ok": True, "patient_id": patient_id}
