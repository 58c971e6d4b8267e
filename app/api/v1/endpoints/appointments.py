# app/api/v1/endpoints/appointments.py
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import FrontDeskError
from app.dependencies.frontdesk import get_now, to_http_exception
from app.schemas.admission import AdmissionResult
from app.schemas.appointment import AppointmentDetails, ScanRequest
from app.services.admission_service import check_in_by_code, lookup_appointment

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/scan", response_model=AdmissionResult)
def scan_appointment(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> AdmissionResult:
    """
    Check in by appointment code.

    Every classified outcome (ADMIT, TOO_EARLY, TOO_LATE, EXPIRED,
    FUTURE_APPOINTMENT, NOT_FOUND) is a 200 with the decision in the body.
    Errors are reserved for illegal/raced transitions (409) and storage
    failures (500).
    """
    try:
        return check_in_by_code(
            db,
            payload.appointment_code,
            now=now,
            begin_consultation=payload.begin_consultation,
        )
    except FrontDeskError as e:
        logger.warning(f"Check-in of {payload.appointment_code!r} failed: {e}")
        raise to_http_exception(e)


@router.get("/{appointment_code}", response_model=AppointmentDetails)
def get_appointment(
    appointment_code: str,
    db: Session = Depends(get_db),
) -> AppointmentDetails:
    appointment = lookup_appointment(db, appointment_code)
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    return appointment
