# app/dependencies/frontdesk.py
from datetime import datetime

from fastapi import HTTPException, status

from app.core.exceptions import (
    FrontDeskError,
    InvalidSlot,
    NoDoctorSelected,
    TransitionConflict,
    TransportFailure,
    VisitNotFound,
)
from app.utils.datetime_utils import clinic_now


def get_now() -> datetime:
    """
    Current clinic-local time as a dependency, so tests can pin the clock:

        app.dependency_overrides[get_now] = lambda: datetime(2024, 6, 10, 9, 5)
    """
    return clinic_now()


def to_http_exception(error: FrontDeskError) -> HTTPException:
    """Map a domain error to the HTTP error endpoints raise."""
    if isinstance(error, (NoDoctorSelected, InvalidSlot)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, VisitNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, TransitionConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(error),
                "record_no": error.record_no,
                "blocking_record_no": error.blocking_record_no,
            },
        )
    if isinstance(error, TransportFailure):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
