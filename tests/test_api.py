"""HTTP contract: status codes and payloads."""
from datetime import date, time, timedelta

import pytest

from hospital_scheduler import models
from hospital_scheduler.errors import Busy, RepositoryUnavailable
from hospital_scheduler.services import booking

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def refs(client):
    dept = client.post("/departments", json={"name": "Neurology"}).json()
    doctor = client.post("/doctors", json={"full_name": "Dr. Bob Brain", "department_id": dept["id"]}).json()
    patient = client.post("/patients", json={"full_name": "Jane Smith", "phone": "+1-555-0124"}).json()
    return {"department_id": dept["id"], "doctor_id": doctor["id"], "patient_id": patient["id"]}


@pytest.fixture
def payload(refs, day):
    def _payload(at="10:00", **extra):
        return {
            "patient_id": refs["patient_id"],
            "doctor_id": refs["doctor_id"],
            "appointment_date": day.isoformat(),
            "appointment_time": at,
            **extra,
        }

    return _payload


class TestBookingEndpoint:
    def test_created(self, client, payload, refs):
        r = client.post("/appointments", json=payload(duration_minutes=45, notes="<i>first</i> visit"))
        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "scheduled"
        assert body["appointment_time"] == "10:00"
        assert body["end_time"] == "10:45"
        assert body["notes"] == "first visit"
        assert body["doctor_name"] == "Dr. Bob Brain"
        assert body["department_name"] == "Neurology"

    def test_conflict(self, client, payload):
        first = client.post("/appointments", json=payload()).json()
        r = client.post("/appointments", json=payload(at="10:15"))
        assert r.status_code == 409
        body = r.json()
        assert body["error"] == "TIME_CONFLICT"
        assert body["conflicts"][0]["id"] == first["id"]
        assert body["conflicts"][0]["end_time"] == "10:30"
        assert body["suggestions"][0] == "09:00"

    def test_back_to_back(self, client, payload):
        assert client.post("/appointments", json=payload(at="10:00")).status_code == 201
        assert client.post("/appointments", json=payload(at="10:30")).status_code == 201

    def test_unknown_doctor(self, client, payload):
        r = client.post("/appointments", json=payload(doctor_id=9999))
        assert r.status_code == 404
        assert r.json()["error"] == "DOCTOR_NOT_FOUND"
        assert r.json()["missingRef"] == "doctor_id"

    def test_invalid_field(self, client, payload):
        r = client.post("/appointments", json=payload(duration_minutes=500))
        assert r.status_code == 400
        assert r.json()["validationErrors"] == ["Duration must be between 15 and 240 minutes"]

    def test_missing_field(self, client, payload):
        body = payload()
        del body["doctor_id"]
        r = client.post("/appointments", json=body)
        assert r.status_code == 400
        assert r.json()["error"] == "VALIDATION_ERROR"

    def test_past_date(self, client, payload):
        past = (date.today() - timedelta(days=2)).isoformat()
        r = client.post("/appointments", json=payload(appointment_date=past))
        assert r.status_code == 400

    @pytest.mark.parametrize("exc", [Busy(), RepositoryUnavailable()])
    def test_retryable_errors(self, client, payload, monkeypatch, exc):
        def unavailable(db, data, today=None):
            raise exc

        monkeypatch.setattr(booking, "book_appointment", unavailable)
        r = client.post("/appointments", json=payload())
        assert r.status_code == 503
        assert r.headers["Retry-After"] == "1"
        assert r.json()["error"] == exc.code


class TestSlotsEndpoint:
    def test_slots(self, client, payload, refs, day):
        client.post("/appointments", json=payload(at="09:00", duration_minutes=60))
        r = client.get("/slots", params={"doctor_id": refs["doctor_id"], "date": day.isoformat()})
        assert r.status_code == 200
        body = r.json()
        assert body["duration_minutes"] == 30
        assert len(body["slots"]) == 16
        free = {s["time"]: s["available"] for s in body["slots"]}
        assert free["09:00"] is False and free["09:30"] is False
        assert free["10:00"] is True

    def test_unknown_doctor(self, client, day):
        r = client.get("/slots", params={"doctor_id": 9999, "date": day.isoformat()})
        assert r.status_code == 404

    def test_bad_date(self, client, refs):
        r = client.get("/slots", params={"doctor_id": refs["doctor_id"], "date": "31-12-2030"})
        assert r.status_code == 400


class TestStatusEndpoint:
    def test_transitions(self, client, payload):
        appt = client.post("/appointments", json=payload()).json()
        url = f"/appointments/{appt['id']}/status"

        r = client.patch(url, json={"status": "checked_in"})
        assert r.status_code == 200
        assert r.json()["status"] == "checked_in"

        r = client.patch(url, json={"status": "scheduled"})
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_STATUS_TRANSITION"
        assert r.json()["allowed"] == ["cancelled", "completed"]

    def test_unknown_status_value(self, client, payload):
        appt = client.post("/appointments", json=payload()).json()
        r = client.patch(f"/appointments/{appt['id']}/status", json={"status": "no_show"})
        assert r.status_code == 400

    def test_cancel_frees_the_slot(self, client, payload):
        appt = client.post("/appointments", json=payload()).json()
        client.patch(f"/appointments/{appt['id']}/status", json={"status": "cancelled"})
        assert client.post("/appointments", json=payload()).status_code == 201

    def test_unknown_appointment(self, client):
        r = client.patch("/appointments/9999/status", json={"status": "cancelled"})
        assert r.status_code == 404
        assert r.json()["error"] == "APPOINTMENT_NOT_FOUND"


class TestRescheduleEndpoint:
    def test_shift_within_own_slot(self, client, payload, day):
        appt = client.post("/appointments", json=payload(at="10:00")).json()
        r = client.put(f"/appointments/{appt['id']}/reschedule", json={
            "appointment_date": day.isoformat(),
            "appointment_time": "10:15",
        })
        assert r.status_code == 200
        assert r.json()["appointment_time"] == "10:15"
        assert r.json()["end_time"] == "10:45"

    def test_conflict(self, client, payload, day):
        client.post("/appointments", json=payload(at="11:00"))
        appt = client.post("/appointments", json=payload(at="10:00")).json()
        r = client.put(f"/appointments/{appt['id']}/reschedule", json={
            "appointment_date": day.isoformat(),
            "appointment_time": "11:00",
        })
        assert r.status_code == 409


class TestListing:
    def test_filters_and_stats(self, client, payload, refs, day):
        a = client.post("/appointments", json=payload(at="09:00")).json()
        client.post("/appointments", json=payload(at="11:00"))
        client.patch(f"/appointments/{a['id']}/status", json={"status": "cancelled"})

        r = client.get("/appointments", params={"doctor_id": refs["doctor_id"], "date": day.isoformat()})
        assert [x["appointment_time"] for x in r.json()] == ["11:00", "09:00"]

        r = client.get("/appointments", params={"status": "cancelled"})
        assert [x["id"] for x in r.json()] == [a["id"]]

        stats = client.get("/appointments/stats/overview").json()
        assert stats["total"] == 2
        assert stats["byStatus"]["cancelled"] == 1
        assert stats["byStatus"]["scheduled"] == 1

    def test_get_one(self, client, payload):
        appt = client.post("/appointments", json=payload()).json()
        assert client.get(f"/appointments/{appt['id']}").json()["patient_name"] == "Jane Smith"
        assert client.get("/appointments/9999").status_code == 404


class TestRegistry:
    def test_duplicate_phone(self, client, refs):
        r = client.post("/patients", json={"full_name": "Someone Else", "phone": "+1-555-0124"})
        assert r.status_code == 409
        assert r.json()["error"] == "DUPLICATE_ENTRY"

    def test_duplicate_department(self, client, refs):
        assert client.post("/departments", json={"name": "Neurology"}).status_code == 409

    def test_patient_search(self, client, refs):
        client.post("/patients", json={"full_name": "John Doe", "phone": "+1-555-0123"})
        r = client.get("/patients", params={"search": "smi"})
        assert [p["full_name"] for p in r.json()] == ["Jane Smith"]
        r = client.get("/patients", params={"phone": "+1-555-0123"})
        assert [p["full_name"] for p in r.json()] == ["John Doe"]

    def test_doctor_with_unknown_department(self, client):
        r = client.post("/doctors", json={"full_name": "Dr. Nobody", "department_id": 77})
        assert r.status_code == 404

    def test_deleting_patient_removes_appointments(self, client, payload, refs):
        appt = client.post("/appointments", json=payload()).json()
        assert client.delete(f"/patients/{refs['patient_id']}").status_code == 200
        assert client.get(f"/appointments/{appt['id']}").status_code == 404

    def test_deleting_department_keeps_doctors(self, client, refs):
        assert client.delete(f"/departments/{refs['department_id']}").status_code == 200
        doctor = client.get(f"/doctors/{refs['doctor_id']}").json()
        assert doctor["department_id"] is None


class TestAdmin:
    def test_requires_token(self, client):
        assert client.post("/admin/db/purge_cancelled").status_code == 401

    def test_purge_cancelled(self, client, db, refs):
        old = models.Appointment(
            patient_id=refs["patient_id"],
            doctor_id=refs["doctor_id"],
            appointment_date=date.today() - timedelta(days=400),
            appointment_time=time(9, 0),
            duration_minutes=30,
            status=models.AppointmentStatus.cancelled,
        )
        db.add(old)
        db.commit()

        r = client.post("/admin/db/purge_cancelled", headers={"X-Admin-Token": ADMIN_TOKEN})
        assert r.status_code == 200
        assert r.json()["deleted_count"] == 1

    def test_health(self, client):
        assert client.get("/admin/health").json()["database"] == "sqlite"


class TestWalkInEndpoint:
    @pytest.fixture
    def walk_in(self, day):
        def _walk_in(full_name="Mike Johnson", phone="+1-555-0125", department="Neurology", at="10:00", **extra):
            return {
                "full_name": full_name,
                "phone": phone,
                "department": department,
                "appointment_date": day.isoformat(),
                "appointment_time": at,
                **extra,
            }

        return _walk_in

    def test_registers_new_patient(self, client, refs, walk_in):
        r = client.post("/appointments/simple", json=walk_in())
        assert r.status_code == 201
        body = r.json()
        assert body["patient_name"] == "Mike Johnson"
        assert body["doctor_id"] == refs["doctor_id"]
        assert body["department_name"] == "Neurology"
        assert body["duration_minutes"] == 30
        assert body["end_time"] == "10:30"

        patients = client.get("/patients", params={"phone": "+1-555-0125"}).json()
        assert [p["id"] for p in patients] == [body["patient_id"]]

    def test_existing_phone_reuses_patient(self, client, refs, walk_in):
        r = client.post("/appointments/simple", json=walk_in(full_name="J. Smith", phone="+1-555-0124"))
        assert r.status_code == 201
        assert r.json()["patient_id"] == refs["patient_id"]
        assert r.json()["patient_name"] == "Jane Smith"
        assert len(client.get("/patients").json()) == 1

    def test_department_name_ignores_case(self, client, refs, walk_in):
        assert client.post("/appointments/simple", json=walk_in(department="neurology")).status_code == 201

    def test_unknown_department(self, client, refs, walk_in):
        r = client.post("/appointments/simple", json=walk_in(department="Dermatology"))
        assert r.status_code == 404
        assert r.json()["error"] == "DEPARTMENT_NOT_FOUND"
        assert client.get("/patients", params={"phone": "+1-555-0125"}).json() == []

    def test_department_without_doctors(self, client, refs, walk_in):
        client.post("/departments", json={"name": "Pediatrics"})
        r = client.post("/appointments/simple", json=walk_in(department="Pediatrics"))
        assert r.status_code == 404
        assert r.json()["error"] == "DOCTOR_NOT_FOUND"

    def test_next_doctor_when_first_is_taken(self, client, refs, walk_in):
        second = client.post("/doctors", json={
            "full_name": "Dr. Zed Nerve", "department_id": refs["department_id"],
        }).json()
        first = client.post("/appointments/simple", json=walk_in()).json()
        r = client.post("/appointments/simple", json=walk_in(full_name="Ann Lee", phone="+1-555-0126"))
        assert r.status_code == 201
        assert first["doctor_id"] == refs["doctor_id"]
        assert r.json()["doctor_id"] == second["id"]

    def test_all_doctors_taken(self, client, refs, walk_in):
        second = client.post("/doctors", json={
            "full_name": "Dr. Zed Nerve", "department_id": refs["department_id"],
        }).json()
        client.post("/appointments/simple", json=walk_in(phone="+1-555-0126"))
        client.post("/appointments/simple", json=walk_in(phone="+1-555-0127"))

        r = client.post("/appointments/simple", json=walk_in(at="10:15"))
        assert r.status_code == 409
        body = r.json()
        assert body["error"] == "TIME_CONFLICT"
        assert {c["doctor_id"] for c in body["conflicts"]} == {refs["doctor_id"], second["id"]}
        assert body["suggestions"] == ["09:00", "09:30", "10:30", "11:00", "11:30"]

    def test_past_date_registers_nobody(self, client, refs, walk_in):
        past = (date.today() - timedelta(days=2)).isoformat()
        r = client.post("/appointments/simple", json=walk_in(appointment_date=past))
        assert r.status_code == 400
        assert client.get("/patients", params={"phone": "+1-555-0125"}).json() == []

    def test_missing_field(self, client, refs, walk_in):
        body = walk_in()
        del body["phone"]
        assert client.post("/appointments/simple", json=body).status_code == 400
