# app/schemas/admission.py
from enum import Enum

from pydantic import BaseModel

from app.models.visit import VisitStatus
from app.schemas.appointment import AppointmentDetails


class AdmissionDecision(str, Enum):
    ADMIT = "ADMIT"
    FUTURE_APPOINTMENT = "FUTURE_APPOINTMENT"
    TOO_EARLY = "TOO_EARLY"
    TOO_LATE = "TOO_LATE"
    EXPIRED = "EXPIRED"
    NOT_FOUND = "NOT_FOUND"


# Operator-facing text per decision
DECISION_MESSAGES: dict[AdmissionDecision, str] = {
    AdmissionDecision.ADMIT: "Appointment verified. Patient added to the queue.",
    AdmissionDecision.FUTURE_APPOINTMENT: "Appointment is scheduled for a future date.",
    AdmissionDecision.TOO_EARLY: "Too early. Please come back within 30 minutes of the scheduled time.",
    AdmissionDecision.TOO_LATE: "Appointment time has passed. Please contact reception.",
    AdmissionDecision.EXPIRED: "Appointment date has already passed.",
    AdmissionDecision.NOT_FOUND: "No appointment found with that code.",
}


class AdmissionResult(BaseModel):
    """
    Outcome of classifying one appointment code at one instant.

    `appointment` is filled whenever the code resolved, so rejected scans
    still show patient, doctor and scheduled time.
    """

    decision: AdmissionDecision
    message: str
    appointment_code: str
    appointment: AppointmentDetails | None = None
    minutes_late: int | None = None
    # Closest remaining slot for today when the patient is too late
    suggested_time: str | None = None
    # Status the visit ended up in after a successful admission
    visit_status: VisitStatus | None = None

    @property
    def admitted(self) -> bool:
        return self.decision == AdmissionDecision.ADMIT
