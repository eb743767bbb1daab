# hospital_scheduler/services/registry.py
"""Departments, doctors and patients: the records appointments point at."""
from __future__ import annotations
import logging
from typing import Any, List, Mapping, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..errors import Duplicate, NotFound, ValidationError
from .schedule import storage_guard
from .validation import DEPARTMENT_RULES, DOCTOR_RULES, PATIENT_RULES, validate_fields

logger = logging.getLogger(__name__)

M = TypeVar("M")


def require(db: Session, model: Type[M], pk: int, resource: str, ref: str) -> M:
    with storage_guard(f"load {resource}"):
        obj = db.get(model, pk)
    if obj is None:
        raise NotFound(resource, ref, pk)
    return obj


def _commit(db: Session, operation: str, duplicate_field: Optional[str] = None) -> None:
    try:
        with storage_guard(operation):
            db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Integrity error on %s: %s", operation, exc.orig)
        if duplicate_field:
            raise Duplicate(duplicate_field) from exc
        raise ValidationError(["Referenced record does not exist or is still in use"]) from exc
    except Exception:
        db.rollback()
        raise


# ──────────────────────────────────────────────────────────────────────────────
# Departments
# ──────────────────────────────────────────────────────────────────────────────
def list_departments(db: Session) -> List[models.Department]:
    with storage_guard("list_departments"):
        return list(db.scalars(select(models.Department).order_by(models.Department.name.asc())))


def create_department(db: Session, data: Mapping[str, Any]) -> models.Department:
    clean = validate_fields(data, DEPARTMENT_RULES)
    dept = models.Department(name=clean["name"])
    db.add(dept)
    _commit(db, "create_department", "name")
    db.refresh(dept)
    logger.info("Department created id=%s name=%s", dept.id, dept.name)
    return dept


def update_department(db: Session, department_id: int, data: Mapping[str, Any]) -> models.Department:
    dept = require(db, models.Department, department_id, "department", "department_id")
    clean = validate_fields(data, DEPARTMENT_RULES)
    dept.name = clean["name"]
    _commit(db, "update_department", "name")
    db.refresh(dept)
    return dept


def delete_department(db: Session, department_id: int) -> None:
    """Doctors of the department stay, with ``department_id`` set to null."""
    dept = require(db, models.Department, department_id, "department", "department_id")
    db.delete(dept)
    _commit(db, "delete_department")
    logger.info("Department deleted id=%s", department_id)


# ──────────────────────────────────────────────────────────────────────────────
# Doctors
# ──────────────────────────────────────────────────────────────────────────────
def list_doctors(db: Session, department_id: Optional[int] = None) -> List[models.Doctor]:
    stmt = select(models.Doctor).options(selectinload(models.Doctor.department))
    if department_id is not None:
        stmt = stmt.where(models.Doctor.department_id == department_id)
    with storage_guard("list_doctors"):
        return list(db.scalars(stmt.order_by(models.Doctor.full_name.asc())))


def _doctor_fields(db: Session, data: Mapping[str, Any]) -> dict:
    clean = validate_fields(data, DOCTOR_RULES)
    if clean["department_id"] is not None:
        require(db, models.Department, clean["department_id"], "department", "department_id")
    return clean


def create_doctor(db: Session, data: Mapping[str, Any]) -> models.Doctor:
    doctor = models.Doctor(**_doctor_fields(db, data))
    db.add(doctor)
    _commit(db, "create_doctor")
    db.refresh(doctor)
    logger.info("Doctor created id=%s name=%s", doctor.id, doctor.full_name)
    return doctor


def update_doctor(db: Session, doctor_id: int, data: Mapping[str, Any]) -> models.Doctor:
    doctor = require(db, models.Doctor, doctor_id, "doctor", "doctor_id")
    for key, value in _doctor_fields(db, data).items():
        setattr(doctor, key, value)
    _commit(db, "update_doctor")
    db.refresh(doctor)
    return doctor


def delete_doctor(db: Session, doctor_id: int) -> None:
    """Removes the doctor together with all of their appointments."""
    doctor = require(db, models.Doctor, doctor_id, "doctor", "doctor_id")
    db.delete(doctor)
    _commit(db, "delete_doctor")
    logger.info("Doctor deleted id=%s", doctor_id)


# ──────────────────────────────────────────────────────────────────────────────
# Patients
# ──────────────────────────────────────────────────────────────────────────────
def list_patients(db: Session, search: Optional[str] = None, phone: Optional[str] = None) -> List[models.Patient]:
    stmt = select(models.Patient)
    if phone:
        stmt = stmt.where(models.Patient.phone == phone.strip())
    if search:
        stmt = stmt.where(models.Patient.full_name.ilike(f"%{search.strip()}%"))
    with storage_guard("list_patients"):
        return list(db.scalars(stmt.order_by(models.Patient.full_name.asc())))


def create_patient(db: Session, data: Mapping[str, Any]) -> models.Patient:
    clean = validate_fields(data, PATIENT_RULES)
    patient = models.Patient(**clean)
    db.add(patient)
    _commit(db, "create_patient", "phone number")
    db.refresh(patient)
    logger.info("Patient created id=%s", patient.id)
    return patient


def update_patient(db: Session, patient_id: int, data: Mapping[str, Any]) -> models.Patient:
    patient = require(db, models.Patient, patient_id, "patient", "patient_id")
    for key, value in validate_fields(data, PATIENT_RULES).items():
        setattr(patient, key, value)
    _commit(db, "update_patient", "phone number")
    db.refresh(patient)
    return patient


def delete_patient(db: Session, patient_id: int) -> None:
    """Cascades: the patient's appointments are deleted with them."""
    patient = require(db, models.Patient, patient_id, "patient", "patient_id")
    db.delete(patient)
    _commit(db, "delete_patient")
    logger.info("Patient deleted id=%s", patient_id)
