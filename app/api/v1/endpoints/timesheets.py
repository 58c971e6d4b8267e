# app/api/v1/endpoints/timesheets.py
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import FrontDeskError
from app.dependencies.frontdesk import get_now, to_http_exception
from app.schemas.timesheet import (
    AvailableTimesResponse,
    BulkTimesheetResponse,
    TimesheetListResponse,
    TimesheetSlotCreate,
    TimesheetSlotResponse,
    WeekGridResponse,
    WeekRow,
    WeekSlot,
)
from app.services.timesheet_service import (
    TimesheetGrid,
    available_times,
    list_timesheets,
    save_timesheet_slots,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=TimesheetListResponse)
def get_timesheets(
    employee_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
) -> TimesheetListResponse:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    rows = list_timesheets(db, employee_id=employee_id, start_date=start_date, end_date=end_date)
    data = [TimesheetSlotResponse.model_validate(r) for r in rows]
    return TimesheetListResponse(data=data, count=len(data))


@router.get("/week", response_model=WeekGridResponse)
def get_week_grid(
    employee_id: Optional[int] = Query(None),
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> WeekGridResponse:
    """Weekly slot grid (Sunday to Saturday) for the week containing `date`."""

    def fetch(emp: int, start: date, end: date):
        return list_timesheets(db, employee_id=emp, start_date=start, end_date=end)

    try:
        grid = TimesheetGrid.load(fetch, employee_id, day)
    except FrontDeskError as e:
        raise to_http_exception(e)

    rows = [
        WeekRow(
            time=row["time"],
            slots=[WeekSlot(date=slot["date"], state=slot["state"].value) for slot in row["slots"]],
        )
        for row in grid.rows()
    ]
    return WeekGridResponse(
        employee_id=grid.employee_id,
        week_start=grid.week_start,
        week_end=grid.week_end,
        rows=rows,
    )


@router.get("/available", response_model=AvailableTimesResponse)
def get_available_times(
    employee_id: int = Query(...),
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> AvailableTimesResponse:
    times = available_times(db, employee_id, day, now=now)
    return AvailableTimesResponse(employee_id=employee_id, date=day, times=times)


@router.post("/bulk", response_model=BulkTimesheetResponse, status_code=status.HTTP_201_CREATED)
def bulk_create_timesheets(
    payload: list[TimesheetSlotCreate],
    db: Session = Depends(get_db),
) -> BulkTimesheetResponse:
    """
    Save a batch of timesheet slots in one transaction.

    Slots that already exist (or repeat within the batch) are skipped, slots
    for unknown employees are reported under `errors`.
    """
    if not payload:
        raise HTTPException(status_code=400, detail="Request body must be a non-empty array")

    try:
        inserted, skipped, errors = save_timesheet_slots(db, payload)
    except FrontDeskError as e:
        raise to_http_exception(e)

    return BulkTimesheetResponse(
        message=f"Processed {len(payload)} timesheet records",
        inserted=len(inserted),
        skipped=skipped,
        failed=len(errors),
        data=[TimesheetSlotResponse.model_validate(r) for r in inserted],
        errors=errors,
    )
