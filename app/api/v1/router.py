# app/api/v1/router.py
from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    queue,
    timesheets,
    visits,
)

api_router = APIRouter()

api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(timesheets.router, prefix="/timesheets", tags=["timesheets"])
api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
api_router.include_router(visits.router, prefix="/visits", tags=["visits"])
