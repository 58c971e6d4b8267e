# app/api/v1/endpoints/visits.py
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import FrontDeskError
from app.dependencies.frontdesk import get_now, to_http_exception
from app.models.employee import Employee
from app.models.patient import Patient
from app.models.visit import VisitStatus
from app.schemas.visit import VisitCreate, VisitEntry
from app.services.visit_queue_service import QueueAction
from app.services.visit_service import get_visit, schedule_visit, to_visit_entry, transition_visit

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=VisitEntry, status_code=status.HTTP_201_CREATED)
def create_visit(
    payload: VisitCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> VisitEntry:
    """
    Book a visit into a doctor's timesheet slot.

    Scheduled/Follow-Up visits start as Scheduled and wait for a check-in
    scan; Walk-in and Emergency visits enter the queue directly.
    """
    if not db.query(Patient.patient_id).filter(Patient.patient_id == payload.patient_id).first():
        raise HTTPException(status_code=404, detail="Patient not found")
    if not db.query(Employee.employee_id).filter(Employee.employee_id == payload.employee_id).first():
        raise HTTPException(status_code=404, detail="Doctor not found")

    try:
        record = schedule_visit(db, payload, now=now)
    except FrontDeskError as e:
        raise to_http_exception(e)
    return to_visit_entry(record)


@router.get("/{record_no}", response_model=VisitEntry)
def read_visit(record_no: int, db: Session = Depends(get_db)) -> VisitEntry:
    try:
        return to_visit_entry(get_visit(db, record_no))
    except FrontDeskError as e:
        raise to_http_exception(e)


@router.patch("/{record_no}/{action}", response_model=VisitEntry)
def change_visit_status(
    record_no: int,
    action: QueueAction,
    expected: VisitStatus | None = Query(None, description="Status the caller last saw; 409 if it changed"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> VisitEntry:
    """
    Action endpoints for the visit lifecycle:
    - /admit     Scheduled -> Queued
    - /begin     Queued -> Current (one Current visit per doctor)
    - /complete  Current -> Completed
    - /cancel    Scheduled | Queued -> Cancelled
    - /resume    Current stays Current
    """
    try:
        return transition_visit(db, record_no, action, now=now, expected=expected)
    except FrontDeskError as e:
        logger.info(f"Visit {record_no} {action.value} rejected: {e}")
        raise to_http_exception(e)
