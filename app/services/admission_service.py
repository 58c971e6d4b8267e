# app/services/admission_service.py
"""
Appointment admission: "can this appointment be checked in right now?"

classify_admission() is a pure function of (appointment, now). It never
touches storage; check_in_by_code() does the lookup, classification and,
on ADMIT, the queue transition.

Window policy (defaults, minutes relative to the scheduled time):

    date after today            -> FUTURE_APPOINTMENT
    date before today           -> EXPIRED
    today, delta < -30          -> TOO_EARLY
    today, delta > +30          -> TOO_LATE
    today, -30 <= delta <= +30  -> ADMIT
"""

import logging
import math
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.config import get_settings
from app.models.visit import VisitRecord, VisitStatus
from app.schemas.admission import DECISION_MESSAGES, AdmissionDecision, AdmissionResult
from app.schemas.appointment import AppointmentDetails
from app.services.timesheet_service import closest_available_time
from app.services.visit_queue_service import QueueAction
from app.services.visit_service import transition_visit
from app.utils.datetime_utils import minutes_between, scheduled_datetime, to_clinic_local
from app.utils.id_generators import normalize_appointment_code

logger = logging.getLogger(__name__)


def classify_admission(
    appointment: AppointmentDetails | None,
    now: datetime,
    *,
    appointment_code: str = "",
    early_minutes: int | None = None,
    late_minutes: int | None = None,
) -> AdmissionResult:
    settings = get_settings()
    early = settings.admission_early_minutes if early_minutes is None else early_minutes
    late = settings.admission_late_minutes if late_minutes is None else late_minutes

    if appointment is None:
        return AdmissionResult(
            decision=AdmissionDecision.NOT_FOUND,
            message=DECISION_MESSAGES[AdmissionDecision.NOT_FOUND],
            appointment_code=appointment_code,
        )

    local_now = to_clinic_local(now)
    today = local_now.date()
    code = appointment_code or appointment.appointment_code

    if appointment.date_scheduled > today:
        decision = AdmissionDecision.FUTURE_APPOINTMENT
        minutes_late = None
    elif appointment.date_scheduled < today:
        decision = AdmissionDecision.EXPIRED
        minutes_late = None
    else:
        delta = minutes_between(
            scheduled_datetime(appointment.date_scheduled, appointment.time_scheduled),
            local_now,
        )
        if delta < -early:
            decision = AdmissionDecision.TOO_EARLY
        elif delta > late:
            decision = AdmissionDecision.TOO_LATE
        else:
            decision = AdmissionDecision.ADMIT
        # Whole minutes; negative means early
        minutes_late = math.floor(delta) if delta >= 0 else -math.floor(-delta)

    message = DECISION_MESSAGES[decision]
    if decision == AdmissionDecision.TOO_EARLY:
        message = f"Too early. Please come back within {early} minutes of the scheduled time."

    return AdmissionResult(
        decision=decision,
        message=message,
        appointment_code=code,
        appointment=appointment,
        minutes_late=minutes_late,
    )


def lookup_appointment(db: Session, code: str) -> AppointmentDetails | None:
    """Resolve an appointment code (case and whitespace insensitive)."""
    normalized = normalize_appointment_code(code)
    if not normalized:
        return None

    record = (
        db.query(VisitRecord)
        .options(joinedload(VisitRecord.patient), joinedload(VisitRecord.doctor))
        .filter(func.upper(VisitRecord.appointment_code) == normalized)
        .first()
    )
    if not record:
        return None

    return AppointmentDetails(
        record_no=record.record_no,
        appointment_code=record.appointment_code,
        patient_id=record.patient_id,
        patient_name=record.patient.full_name if record.patient else "",
        doctor_id=record.employee_id,
        doctor_name=record.doctor.doctor_name if record.doctor else "",
        date_scheduled=record.date_scheduled,
        time_scheduled=record.time_scheduled,
        visit_status=record.visit_status,
    )


def check_in_by_code(
    db: Session,
    code: str,
    *,
    now: datetime,
    begin_consultation: bool = False,
) -> AdmissionResult:
    """
    Lookup + classify + (on ADMIT) move the visit to Queued, or straight to
    Current when begin_consultation is set.

    Timing rejections and unknown codes come back as results. Illegal or
    raced transitions raise TransitionConflict; storage errors raise
    TransportFailure.
    """
    normalized = normalize_appointment_code(code)
    appointment = lookup_appointment(db, normalized)
    result = classify_admission(appointment, now, appointment_code=normalized)

    logger.info(
        "Check-in %s: %s (minutes_late=%s)",
        normalized or "<empty>",
        result.decision.value,
        result.minutes_late,
    )

    if result.decision == AdmissionDecision.TOO_LATE and appointment is not None:
        local_now = to_clinic_local(now)
        result.suggested_time = closest_available_time(
            db,
            appointment.doctor_id,
            appointment.date_scheduled,
            appointment.time_scheduled,
            now=local_now,
        )

    if not result.admitted:
        return result

    entry = transition_visit(db, appointment.record_no, QueueAction.ADMIT, now=to_clinic_local(now))
    if begin_consultation:
        entry = transition_visit(db, appointment.record_no, QueueAction.BEGIN, now=to_clinic_local(now))

    result.visit_status = entry.visit_status
    result.appointment = appointment.model_copy(update={"visit_status": entry.visit_status})
    if entry.visit_status == VisitStatus.CURRENT:
        result.message = "Appointment verified. Patient is now being served."
    return result
