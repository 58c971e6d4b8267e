from datetime import date, datetime, time, timedelta

import pytest

from app.models.visit import VisitStatus
from app.schemas.admission import AdmissionDecision
from app.schemas.appointment import AppointmentDetails
from app.services.admission_service import classify_admission

SCHEDULED = datetime(2024, 6, 10, 9, 0)


def appointment(day: date = SCHEDULED.date(), at: time = SCHEDULED.time()) -> AppointmentDetails:
    return AppointmentDetails(
        record_no=1,
        appointment_code="APT-2024-001",
        patient_id=10,
        patient_name="Juan Dela Cruz",
        doctor_id=7,
        doctor_name="Dr. Maria Santos",
        date_scheduled=day,
        time_scheduled=at,
        visit_status=VisitStatus.SCHEDULED,
    )


@pytest.mark.parametrize(
    "offset_minutes, expected",
    [
        (-31, AdmissionDecision.TOO_EARLY),
        (-30, AdmissionDecision.ADMIT),
        (0, AdmissionDecision.ADMIT),
        (5, AdmissionDecision.ADMIT),
        (30, AdmissionDecision.ADMIT),
        (31, AdmissionDecision.TOO_LATE),
    ],
)
def test_window_boundaries(offset_minutes, expected):
    now = SCHEDULED + timedelta(minutes=offset_minutes)
    result = classify_admission(appointment(), now)
    assert result.decision == expected


def test_boundary_seconds_past_thirty_minutes_is_too_late():
    now = SCHEDULED + timedelta(minutes=30, seconds=1)
    assert classify_admission(appointment(), now).decision == AdmissionDecision.TOO_LATE


def test_tomorrow_is_future_appointment_regardless_of_time():
    tomorrow = SCHEDULED.date() + timedelta(days=1)
    # 15 minutes away on the clock, but on the next date
    now = datetime(2024, 6, 10, 23, 50)
    result = classify_admission(appointment(day=tomorrow, at=time(0, 5)), now)
    assert result.decision == AdmissionDecision.FUTURE_APPOINTMENT
    assert result.minutes_late is None


def test_yesterday_is_expired():
    result = classify_admission(appointment(day=SCHEDULED.date() - timedelta(days=1)), SCHEDULED)
    assert result.decision == AdmissionDecision.EXPIRED
    assert not result.admitted


def test_missing_appointment_is_not_found():
    result = classify_admission(None, SCHEDULED, appointment_code="APT-NOPE")
    assert result.decision == AdmissionDecision.NOT_FOUND
    assert result.appointment is None
    assert result.appointment_code == "APT-NOPE"


def test_result_carries_display_context_and_minutes_late():
    result = classify_admission(appointment(), SCHEDULED + timedelta(minutes=5, seconds=40))
    assert result.admitted
    assert result.minutes_late == 5
    assert result.appointment.patient_name == "Juan Dela Cruz"
    assert result.appointment.doctor_name == "Dr. Maria Santos"
    assert result.appointment.time_label == "09:00 AM"


def test_early_minutes_are_negative():
    result = classify_admission(appointment(), SCHEDULED - timedelta(minutes=45))
    assert result.decision == AdmissionDecision.TOO_EARLY
    assert result.minutes_late == -45
    assert "30 minutes" in result.message


def test_window_can_be_overridden():
    now = SCHEDULED + timedelta(minutes=40)
    result = classify_admission(appointment(), now, late_minutes=45)
    assert result.decision == AdmissionDecision.ADMIT


def test_aware_now_is_converted_to_clinic_time():
    from datetime import timezone

    # Clinic timezone defaults to UTC
    now = datetime(2024, 6, 10, 9, 10, tzinfo=timezone.utc)
    assert classify_admission(appointment(), now).decision == AdmissionDecision.ADMIT
