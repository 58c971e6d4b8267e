# app/api/v1/endpoints/queue.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.dependencies.frontdesk import get_now
from app.schemas.visit import QueueResponse
from app.services.visit_queue_service import build_queue_view
from app.services.visit_service import get_doctor_info, list_current_queue

router = APIRouter()


@router.get("/current", response_model=QueueResponse)
def get_current_queue(
    employee_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> QueueResponse:
    """
    Today's Current and Queued visits, facility-wide or for one doctor.
    """
    doctor_info = None
    if employee_id is not None:
        doctor_info = get_doctor_info(db, employee_id)
        if doctor_info is None:
            raise HTTPException(status_code=404, detail="Doctor not found")

    entries = list_current_queue(db, day=now.date(), employee_id=employee_id)
    view = build_queue_view(entries)
    return QueueResponse(
        data=entries,
        count=len(entries),
        now_serving=view.now_serving,
        waiting=view.waiting,
        doctor_info=doctor_info,
    )
