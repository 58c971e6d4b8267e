#!/usr/bin/env python3
# scripts/seed_demo_data.py
"""
Front desk demo data seeder.

Creates, for local runs against the configured DATABASE_URL:
- 4 doctors with departments
- 30 patients
- hourly timesheet slots for every doctor, this week and next
- today's visits spread around "now" so every admission outcome can be
  tried from the scan station (on time, too early, too late), plus a few
  Queued / Current visits so queue screens have something to show
- yesterday's and tomorrow's visits (EXPIRED / FUTURE_APPOINTMENT)

Demo rows are tagged through the patient middle name / doctor position
marker "DEMO" so --reset only removes what this script created.

Run:
  python -m scripts.seed_demo_data --seed
  python -m scripts.seed_demo_data --reset
  python -m scripts.seed_demo_data --create-tables --seed
"""

import argparse
import logging
import random
import sys
from datetime import date, datetime, time, timedelta
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Allow "python -m scripts.seed_demo_data" from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from app.core.config import get_settings  # noqa: E402
from app.core.database import SessionLocal, engine  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.models.employee import Employee  # noqa: E402
from app.models.patient import Patient  # noqa: E402
from app.models.timesheet import TimesheetSlot  # noqa: E402
from app.models.visit import VisitRecord, VisitStatus, VisitType  # noqa: E402
from app.services.timesheet_service import compute_week  # noqa: E402
from app.utils.datetime_utils import clinic_now, format_time_label  # noqa: E402
from app.utils.id_generators import generate_appointment_code  # noqa: E402

logger = logging.getLogger(__name__)

DEMO_MARKER = "DEMO"

DOCTORS = [
    ("Maria", "Santos", "General Medicine"),
    ("Jose", "Reyes", "Pediatrics"),
    ("Ana", "Cruz", "Cardiology"),
    ("Paolo", "Garcia", "Dermatology"),
]

FIRST_NAMES = ["Juan", "Liza", "Mark", "Grace", "Ramon", "Carla", "Miguel", "Bea", "Noel", "Ivy"]
LAST_NAMES = ["Dela Cruz", "Bautista", "Mendoza", "Aquino", "Villanueva", "Torres", "Ramos", "Flores"]

PURPOSES = [
    ("Follow-up consultation", "Review of lab results"),
    ("General check-up", "Annual physical"),
    ("Consultation", "Persistent cough for 2 weeks"),
    ("Consultation", "Skin rash on forearm"),
    (None, None),
]


def demo_position(department: str) -> str:
    return f"{department} ({DEMO_MARKER})"


def create_doctors(db: Session) -> list[Employee]:
    doctors = []
    for first, last, department in DOCTORS:
        doctor = Employee(first_name=first, last_name=last, position=demo_position(department))
        db.add(doctor)
        doctors.append(doctor)
    db.flush()
    return doctors


def create_patients(db: Session, count: int = 30) -> list[Patient]:
    patients = []
    for _ in range(count):
        patient = Patient(
            first_name=random.choice(FIRST_NAMES),
            middle_name=DEMO_MARKER,
            last_name=random.choice(LAST_NAMES),
        )
        db.add(patient)
        patients.append(patient)
    db.flush()
    return patients


def create_timesheets(db: Session, doctors: list[Employee], today: date) -> int:
    settings = get_settings()
    days = compute_week(today) + compute_week(today + timedelta(days=7))
    count = 0
    for doctor in doctors:
        for day in days:
            if day.weekday() == 6:
                # No clinic hours on Sunday
                continue
            for label in settings.timesheet_time_labels:
                db.add(
                    TimesheetSlot(
                        employee_id=doctor.employee_id,
                        timesheet_date=day,
                        timesheet_time=label,
                        max_appointment=settings.timesheet_slot_capacity,
                    )
                )
                count += 1
    db.flush()
    return count


def _nearest_hour(dt: datetime, offset_hours: int) -> time:
    hour = min(max(dt.hour + offset_hours, 6), 22)
    return time(hour, 0)


def _add_visit(
    db: Session,
    patient: Patient,
    doctor: Employee,
    day: date,
    at: time,
    *,
    status: VisitStatus = VisitStatus.SCHEDULED,
    visit_type: VisitType = VisitType.SCHEDULED,
) -> VisitRecord:
    purpose, complaint = random.choice(PURPOSES)
    record = VisitRecord(
        patient_id=patient.patient_id,
        employee_id=doctor.employee_id,
        appointment_code=generate_appointment_code(db),
        visit_status=status,
        visit_type=visit_type,
        date_scheduled=day,
        time_scheduled=at,
        visit_purpose_title=purpose,
        visit_chief_complaint=complaint,
    )
    db.add(record)
    # Codes are checked against stored rows; flush so the next one sees this
    db.flush()

    slot = (
        db.query(TimesheetSlot)
        .filter(
            TimesheetSlot.employee_id == doctor.employee_id,
            TimesheetSlot.timesheet_date == day,
            TimesheetSlot.timesheet_time == format_time_label(at),
        )
        .first()
    )
    if slot and slot.max_appointment > 0:
        slot.max_appointment -= 1
    return record


def create_visits(db: Session, doctors: list[Employee], patients: list[Patient], now: datetime) -> list[VisitRecord]:
    today = now.date()
    pool = list(patients)
    random.shuffle(pool)
    visits: list[VisitRecord] = []

    for doctor in doctors:
        # One patient being served and two waiting per doctor
        visits.append(_add_visit(db, pool.pop(), doctor, today, _nearest_hour(now, -1), status=VisitStatus.CURRENT))
        visits.append(_add_visit(db, pool.pop(), doctor, today, _nearest_hour(now, 0), status=VisitStatus.QUEUED))
        visits.append(
            _add_visit(
                db,
                pool.pop(),
                doctor,
                today,
                _nearest_hour(now, 0),
                status=VisitStatus.QUEUED,
                visit_type=VisitType.WALK_IN,
            )
        )

    doctor = doctors[0]
    visits.append(_add_visit(db, pool.pop(), doctor, today, _nearest_hour(now, 0)))  # on time
    visits.append(_add_visit(db, pool.pop(), doctor, today, _nearest_hour(now, 2)))  # too early
    visits.append(_add_visit(db, pool.pop(), doctor, today, _nearest_hour(now, -2)))  # too late
    visits.append(_add_visit(db, pool.pop(), doctor, today - timedelta(days=1), time(9, 0)))  # expired
    visits.append(_add_visit(db, pool.pop(), doctor, today + timedelta(days=1), time(10, 0)))  # future
    return visits


def seed() -> None:
    now = clinic_now()
    db = SessionLocal()
    try:
        doctors = create_doctors(db)
        patients = create_patients(db)
        slots = create_timesheets(db, doctors, now.date())
        visits = create_visits(db, doctors, patients, now)
        # Rows expire on commit; capture what the summary prints first
        summary = [
            f"  {v.appointment_code}  {v.visit_status.value:<9}  "
            f"{v.date_scheduled.isoformat()} {format_time_label(v.time_scheduled)}"
            for v in visits
        ]
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Seeding failed")
        raise
    finally:
        db.close()

    logger.info(
        f"Seeded {len(doctors)} doctors, {len(patients)} patients, {slots} timesheet slots, {len(visits)} visits"
    )
    for line in summary:
        logger.info(line)


def reset() -> None:
    db = SessionLocal()
    try:
        doctor_ids = [
            e.employee_id
            for e in db.query(Employee).filter(Employee.position.like(f"%({DEMO_MARKER})")).all()
        ]
        patient_ids = [p.patient_id for p in db.query(Patient).filter(Patient.middle_name == DEMO_MARKER).all()]

        visits = (
            db.query(VisitRecord)
            .filter((VisitRecord.employee_id.in_(doctor_ids)) | (VisitRecord.patient_id.in_(patient_ids)))
            .delete(synchronize_session=False)
        )
        slots = (
            db.query(TimesheetSlot)
            .filter(TimesheetSlot.employee_id.in_(doctor_ids))
            .delete(synchronize_session=False)
        )
        db.query(Patient).filter(Patient.patient_id.in_(patient_ids)).delete(synchronize_session=False)
        db.query(Employee).filter(Employee.employee_id.in_(doctor_ids)).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Reset failed")
        raise
    finally:
        db.close()

    logger.info(
        f"Removed {visits} visits, {slots} timesheet slots, {len(patient_ids)} patients, {len(doctor_ids)} doctors"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed / reset front desk demo data")
    parser.add_argument("--seed", action="store_true", help="Create demo doctors, patients, timesheets and visits")
    parser.add_argument("--reset", action="store_true", help="Delete demo data only")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local SQLite runs without alembic)",
    )
    args = parser.parse_args()

    if not (args.seed or args.reset or args.create_tables):
        parser.print_help()
        raise SystemExit(1)

    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)s %(message)s")

    if args.create_tables:
        Base.metadata.create_all(bind=engine)
        logger.info("Tables created")

    if args.reset:
        reset()

    if args.seed:
        seed()


if __name__ == "__main__":
    main()
