# app/services/visit_service.py
"""
Database side of the visit queue: loading queue snapshots, persisting
status transitions and booking new visits.
"""

import logging
from datetime import date, datetime

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.config import get_settings
from app.core.exceptions import InvalidSlot, TransitionConflict, TransportFailure, VisitNotFound
from app.core.redis import cache_delete_prefix, cache_get, cache_set
from app.models.employee import Employee
from app.models.visit import VisitRecord, VisitStatus, VisitType
from app.schemas.visit import DoctorInfo, VisitCreate, VisitEntry
from app.services.timesheet_service import bookable_time_labels, release_slot, reserve_slot
from app.services.visit_queue_service import QueueAction, StatusWriter, VisitQueue
from app.utils.datetime_utils import format_time_label, parse_time_label
from app.utils.id_generators import generate_appointment_code

logger = logging.getLogger(__name__)

QUEUE_CACHE_PREFIX = "queue:current:"

_entries_adapter = TypeAdapter(list[VisitEntry])

# Walk-in and emergency visits skip the check-in scan
_DIRECT_TO_QUEUE = {VisitType.WALK_IN, VisitType.EMERGENCY}


def to_visit_entry(record: VisitRecord) -> VisitEntry:
    return VisitEntry(
        record_no=record.record_no,
        appointment_code=record.appointment_code,
        patient_id=record.patient_id,
        employee_id=record.employee_id,
        patient_name=record.patient.full_name if record.patient else "",
        doctor_name=record.doctor.doctor_name if record.doctor else "",
        doctor_department=record.doctor.position if record.doctor else None,
        visit_status=record.visit_status,
        visit_type=record.visit_type,
        date_scheduled=record.date_scheduled,
        time_scheduled=record.time_scheduled,
        visit_purpose_title=record.visit_purpose_title,
        visit_chief_complaint=record.visit_chief_complaint,
    )


def _queue_cache_key(day: date, employee_id: int | None) -> str:
    scope = employee_id if employee_id is not None else "all"
    return f"{QUEUE_CACHE_PREFIX}{day.isoformat()}:{scope}"


def invalidate_queue_cache() -> None:
    cache_delete_prefix(QUEUE_CACHE_PREFIX)


def list_current_queue(
    db: Session,
    *,
    day: date,
    employee_id: int | None = None,
) -> list[VisitEntry]:
    """
    Today's Current and Queued visits (facility-wide or for one doctor),
    ordered by scheduled time.
    """
    cache_key = _queue_cache_key(day, employee_id)
    cached = cache_get(cache_key)
    if cached:
        try:
            return _entries_adapter.validate_json(cached)
        except ValidationError:
            logger.warning("Queue cache corrupted. Recomputing.", exc_info=True)

    query = (
        db.query(VisitRecord)
        .options(joinedload(VisitRecord.patient), joinedload(VisitRecord.doctor))
        .filter(
            VisitRecord.date_scheduled == day,
            VisitRecord.visit_status.in_([VisitStatus.CURRENT, VisitStatus.QUEUED]),
        )
    )
    if employee_id is not None:
        query = query.filter(VisitRecord.employee_id == employee_id)

    records = query.order_by(VisitRecord.time_scheduled.asc(), VisitRecord.record_no.asc()).all()
    entries = [to_visit_entry(r) for r in records]

    cache_set(
        cache_key,
        _entries_adapter.dump_json(entries).decode(),
        ttl=get_settings().queue_cache_ttl_seconds,
    )
    return entries


def get_doctor_info(db: Session, employee_id: int) -> DoctorInfo | None:
    doctor = db.query(Employee).filter(Employee.employee_id == employee_id).first()
    if not doctor:
        return None
    return DoctorInfo(employee_id=doctor.employee_id, doctor_name=doctor.doctor_name, department=doctor.position)


def make_status_writer(db: Session) -> StatusWriter:
    """
    Status writer backed by a conditional UPDATE: the row only changes if it
    still holds the status the caller saw. Anything else means another
    operator got there first.
    """

    def write(record_no: int, new_status: VisitStatus, *, expected: VisitStatus) -> None:
        try:
            record = db.query(VisitRecord).filter(VisitRecord.record_no == record_no).first()
            if not record:
                raise VisitNotFound(record_no)

            if new_status == VisitStatus.CURRENT:
                # Doctor row lock serialises concurrent begins for one doctor
                db.query(Employee.employee_id).filter(
                    Employee.employee_id == record.employee_id
                ).with_for_update().first()
                busy = (
                    db.query(VisitRecord.record_no)
                    .filter(
                        VisitRecord.employee_id == record.employee_id,
                        VisitRecord.visit_status == VisitStatus.CURRENT,
                        VisitRecord.record_no != record_no,
                    )
                    .with_for_update()
                    .first()
                )
                if busy:
                    db.rollback()
                    raise TransitionConflict(
                        f"Doctor is already serving visit {busy.record_no}. Complete that consultation first.",
                        record_no=record_no,
                        blocking_record_no=busy.record_no,
                    )

            updated = (
                db.query(VisitRecord)
                .filter(VisitRecord.record_no == record_no, VisitRecord.visit_status == expected)
                .update({VisitRecord.visit_status: new_status}, synchronize_session=False)
            )
            if updated == 0:
                db.rollback()
                raise TransitionConflict(
                    f"Visit {record_no} was changed by another operator. Refresh and try again.",
                    record_no=record_no,
                )

            if new_status == VisitStatus.CANCELLED:
                release_slot(
                    db,
                    record.employee_id,
                    record.date_scheduled,
                    format_time_label(record.time_scheduled),
                )

            db.commit()
        except IntegrityError as e:
            # uq_visit_one_current_per_doctor: a concurrent begin won the race
            db.rollback()
            logger.info("Visit %s lost a concurrent begin for its doctor", record_no)
            raise TransitionConflict(
                "Doctor is already serving another visit. Refresh and try again.",
                record_no=record_no,
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Failed to write status %s for visit %s", new_status.value, record_no)
            raise TransportFailure("Failed to update visit status.") from e

        invalidate_queue_cache()

    return write


def transition_visit(
    db: Session,
    record_no: int,
    action: QueueAction,
    *,
    now: datetime,
    expected: VisitStatus | None = None,
) -> VisitEntry:
    """
    Run one state-machine action against the stored visit.

    `expected` is the status the caller last saw. When given, the action is
    refused unless the stored status still matches it, so a station acting
    on a stale snapshot cannot overwrite another operator's change.

    Raises:
        VisitNotFound: unknown record number.
        TransitionConflict: illegal transition or concurrent change.
        TransportFailure: the status write failed.
    """
    record = (
        db.query(VisitRecord)
        .options(joinedload(VisitRecord.patient), joinedload(VisitRecord.doctor))
        .filter(VisitRecord.record_no == record_no)
        .first()
    )
    if not record:
        raise VisitNotFound(record_no)

    if expected is not None and record.visit_status != expected:
        raise TransitionConflict(
            f"Visit {record_no} was changed by another operator "
            f"({expected.value} -> {record.visit_status.value}). Refresh and try again.",
            record_no=record_no,
        )

    serving = (
        db.query(VisitRecord)
        .options(joinedload(VisitRecord.patient), joinedload(VisitRecord.doctor))
        .filter(
            VisitRecord.employee_id == record.employee_id,
            VisitRecord.visit_status == VisitStatus.CURRENT,
            VisitRecord.record_no != record_no,
        )
        .all()
    )

    queue = VisitQueue(
        [to_visit_entry(record), *(to_visit_entry(r) for r in serving)],
        writer=make_status_writer(db),
        clock=lambda: now,
    )
    return queue.apply(record_no, action)


def schedule_visit(db: Session, payload: VisitCreate, *, now: datetime) -> VisitRecord:
    """
    Book a visit into a doctor's timesheet slot.

    - the time must be one of the fixed slot labels
    - the slot must exist with remaining capacity (one unit is taken)
    - the slot must not be in the past
    - walk-in / emergency visits enter the queue directly as Queued

    Raises:
        InvalidSlot: off-grid time, slot in the past, missing or full.
        TransportFailure: the booking could not be committed.
    """
    if payload.time_scheduled not in bookable_time_labels():
        raise InvalidSlot(f"{payload.time_scheduled} is not a bookable time slot.")

    slot_time = parse_time_label(payload.time_scheduled)
    if payload.date_scheduled < now.date() or (
        payload.date_scheduled == now.date()
        and payload.visit_type not in _DIRECT_TO_QUEUE
        and slot_time < now.time().replace(second=0, microsecond=0)
    ):
        raise InvalidSlot("Appointment date cannot be in the past.")

    try:
        if not reserve_slot(db, payload.employee_id, payload.date_scheduled, payload.time_scheduled):
            db.rollback()
            raise InvalidSlot("Doctor is not available at the scheduled time.")

        record = VisitRecord(
            patient_id=payload.patient_id,
            employee_id=payload.employee_id,
            appointment_code=generate_appointment_code(db),
            visit_status=VisitStatus.QUEUED if payload.visit_type in _DIRECT_TO_QUEUE else VisitStatus.SCHEDULED,
            visit_type=payload.visit_type,
            date_scheduled=payload.date_scheduled,
            time_scheduled=slot_time,
            visit_purpose_title=payload.visit_purpose_title,
            visit_chief_complaint=payload.visit_chief_complaint,
        )
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to schedule visit for patient %s", payload.patient_id)
        raise TransportFailure("Failed to schedule visit.") from e

    invalidate_queue_cache()
    db.refresh(record)
    logger.info("Scheduled visit %s (%s) for patient %s", record.record_no, record.appointment_code, record.patient_id)
    return record


def get_visit(db: Session, record_no: int) -> VisitRecord:
    record = (
        db.query(VisitRecord)
        .options(joinedload(VisitRecord.patient), joinedload(VisitRecord.doctor))
        .filter(VisitRecord.record_no == record_no)
        .first()
    )
    if not record:
        raise VisitNotFound(record_no)
    return record
