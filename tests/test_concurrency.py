"""Parallel bookings against one doctor's day never leave overlapping appointments."""
import threading
from datetime import timedelta
from itertools import combinations

from hospital_scheduler.database import SessionLocal
from hospital_scheduler.errors import Busy, SchedulingConflict
from hospital_scheduler.services.booking import book_appointment, reschedule_appointment
from hospital_scheduler.services.intervals import Interval
from hospital_scheduler.services.schedule import get_appointment, load_schedule


def run_parallel(jobs):
    """
    Runs every job on its own thread and session, started together. A job is a
    plain booking request or a callable taking the session. Returns the
    resulting appointment ids or the raised errors, in order.
    """
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)

    def worker(i, job):
        db = SessionLocal()
        try:
            barrier.wait()
            appt = job(db) if callable(job) else book_appointment(db, job)
            results[i] = appt.id
        except (SchedulingConflict, Busy) as exc:
            results[i] = exc
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(i, j)) for i, j in enumerate(jobs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def request(patient_id, doctor_id, day, at, duration=30):
    return {
        "patient_id": patient_id,
        "doctor_id": doctor_id,
        "appointment_date": day.isoformat(),
        "appointment_time": at,
        "duration_minutes": duration,
    }


def assert_no_overlaps(db, doctor_id, day):
    schedule = load_schedule(db, doctor_id, day)
    for a, b in combinations(schedule, 2):
        assert not Interval.of(a).overlaps(Interval.of(b)), (a.id, b.id)
    return schedule


def test_same_slot_has_exactly_one_winner(db, make_patient, doctor_id, day):
    patients = [make_patient() for _ in range(6)]
    results = run_parallel([request(p, doctor_id, day, "10:00") for p in patients])

    winners = [r for r in results if isinstance(r, int)]
    losers = [r for r in results if isinstance(r, (SchedulingConflict, Busy))]
    assert len(winners) == 1
    assert len(losers) == 5
    assert [a.id for a in assert_no_overlaps(db, doctor_id, day)] == winners


def test_mutually_overlapping_requests(db, make_patient, doctor_id, day):
    starts = ["10:00", "10:10", "10:15", "10:20", "10:25"]
    results = run_parallel([request(make_patient(), doctor_id, day, s) for s in starts])

    assert sum(isinstance(r, int) for r in results) == 1
    assert len(assert_no_overlaps(db, doctor_id, day)) == 1


def test_disjoint_requests_all_succeed(db, make_patient, doctor_id, day):
    starts = ["09:00", "09:30", "10:00", "10:30", "11:00"]
    results = run_parallel([request(make_patient(), doctor_id, day, s) for s in starts])

    assert all(isinstance(r, int) for r in results), results
    assert len(assert_no_overlaps(db, doctor_id, day)) == 5


def test_different_doctors_do_not_interfere(db, make_patient, make_doctor, day):
    doctors = [make_doctor() for _ in range(4)]
    results = run_parallel([request(make_patient(), d, day, "10:00") for d in doctors])

    assert all(isinstance(r, int) for r in results), results


def test_reschedules_race_bookings_into_one_slot(db, make_patient, doctor_id, day):
    # three appointments on later days, each about to be moved to day 10:00
    movers = []
    for offset in (1, 2, 3):
        data = request(make_patient(), doctor_id, day + timedelta(days=offset), "10:00")
        movers.append(book_appointment(db, data).id)

    def move(appointment_id):
        return lambda session: reschedule_appointment(session, appointment_id, {
            "appointment_date": day.isoformat(),
            "appointment_time": "10:00",
        })

    jobs = [move(a) for a in movers]
    jobs += [request(make_patient(), doctor_id, day, "10:15") for _ in range(3)]
    results = run_parallel(jobs)

    winners = [r for r in results if isinstance(r, int)]
    assert len(winners) == 1, results
    assert all(isinstance(r, (SchedulingConflict, Busy)) for r in results if not isinstance(r, int))
    assert [a.id for a in assert_no_overlaps(db, doctor_id, day)] == winners

    # losing reschedules stay where they were
    db.expire_all()
    for offset, appointment_id in zip((1, 2, 3), movers):
        if appointment_id not in winners:
            assert get_appointment(db, appointment_id).appointment_date == day + timedelta(days=offset)
