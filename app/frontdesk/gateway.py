# app/frontdesk/gateway.py
"""
How station views reach the collaborator operations.

- HttpFrontDeskGateway: REST calls to the API (httpx), for stations running
  on their own machines.
- LocalFrontDeskGateway: the same operations in-process against the
  database, run in worker threads so the event loop never blocks.

Both raise TransitionConflict for rejected transitions and TransportFailure
for anything that failed below the application layer.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime
from typing import Protocol

import httpx
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.core.database import SessionLocal, session_scope
from app.core.exceptions import FrontDeskError, TransitionConflict, TransportFailure
from app.models.visit import VisitStatus
from app.schemas.admission import AdmissionResult
from app.schemas.appointment import AppointmentDetails
from app.schemas.timesheet import BulkTimesheetResponse, TimesheetSlotCreate, TimesheetSlotResponse
from app.schemas.visit import VisitEntry
from app.services import admission_service, timesheet_service, visit_service
from app.services.timesheet_service import SlotTuple
from app.services.visit_queue_service import ACTION_FOR_TARGET
from app.utils.datetime_utils import clinic_now

logger = logging.getLogger(__name__)

_slots_adapter = TypeAdapter(list[TimesheetSlotResponse])
_entries_adapter = TypeAdapter(list[VisitEntry])


class FrontDeskGateway(Protocol):
    async def lookup_appointment(self, code: str) -> AppointmentDetails | None: ...

    async def check_in(self, code: str, *, begin_consultation: bool = False) -> AdmissionResult: ...

    async def get_timesheet(self, employee_id: int, start: date, end: date) -> list[TimesheetSlotResponse]: ...

    async def save_timesheet_slots(self, slots: Sequence[SlotTuple]) -> BulkTimesheetResponse: ...

    async def get_current_queue(self, employee_id: int | None = None) -> list[VisitEntry]: ...

    async def set_visit_status(
        self,
        record_no: int,
        new_status: VisitStatus,
        *,
        expected: VisitStatus | None = None,
    ) -> VisitEntry: ...


def _slot_payload(slots: Sequence[SlotTuple]) -> list[dict]:
    return [
        {"employee_id": employee_id, "timesheet_date": day.isoformat(), "timesheet_time": label}
        for employee_id, day, label in slots
    ]


def _error_detail(response: httpx.Response) -> object:
    try:
        return response.json().get("detail")
    except (ValueError, AttributeError):
        return response.text


class HttpFrontDeskGateway:
    """Collaborator operations over the REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._prefix = settings.api_v1_prefix
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, f"{self._prefix}{path}", **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Front desk API %s %s failed: %s", method, path, e)
            raise TransportFailure(f"Could not reach the front desk service: {e}") from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        detail = _error_detail(response)
        if isinstance(detail, dict):
            message = str(detail.get("message") or detail)
        else:
            message = str(detail)
        if response.status_code == 409:
            raise TransitionConflict(message)
        raise TransportFailure(f"Front desk API error {response.status_code}: {message}")

    async def lookup_appointment(self, code: str) -> AppointmentDetails | None:
        response = await self._request("GET", f"/appointments/{code}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return AppointmentDetails.model_validate(response.json())

    async def check_in(self, code: str, *, begin_consultation: bool = False) -> AdmissionResult:
        response = await self._request(
            "POST",
            "/appointments/scan",
            json={"appointment_code": code, "begin_consultation": begin_consultation},
        )
        self._raise_for_status(response)
        try:
            return AdmissionResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportFailure("Malformed admission response.") from e

    async def get_timesheet(self, employee_id: int, start: date, end: date) -> list[TimesheetSlotResponse]:
        response = await self._request(
            "GET",
            "/timesheets",
            params={"employee_id": employee_id, "start_date": start.isoformat(), "end_date": end.isoformat()},
        )
        self._raise_for_status(response)
        return _slots_adapter.validate_python(response.json()["data"])

    async def save_timesheet_slots(self, slots: Sequence[SlotTuple]) -> BulkTimesheetResponse:
        response = await self._request("POST", "/timesheets/bulk", json=_slot_payload(slots))
        self._raise_for_status(response)
        return BulkTimesheetResponse.model_validate(response.json())

    async def get_current_queue(self, employee_id: int | None = None) -> list[VisitEntry]:
        params = {"employee_id": employee_id} if employee_id is not None else None
        response = await self._request("GET", "/queue/current", params=params)
        self._raise_for_status(response)
        return _entries_adapter.validate_python(response.json()["data"])

    async def set_visit_status(
        self,
        record_no: int,
        new_status: VisitStatus,
        *,
        expected: VisitStatus | None = None,
    ) -> VisitEntry:
        action = ACTION_FOR_TARGET.get(new_status)
        if action is None:
            raise TransitionConflict(f"No action leads to status {new_status.value}.", record_no=record_no)
        params = {"expected": expected.value} if expected is not None else None
        response = await self._request("PATCH", f"/visits/{record_no}/{action.value}", params=params)
        self._raise_for_status(response)
        return VisitEntry.model_validate(response.json())


class LocalFrontDeskGateway:
    """Collaborator operations in-process, one DB session per call."""

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        *,
        clock: Callable[[], datetime] = clinic_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def _run(self, func: Callable[[Session], object]):
        def work():
            with session_scope(self._session_factory) as db:
                return func(db)

        try:
            return await asyncio.to_thread(work)
        except FrontDeskError:
            raise
        except Exception as e:
            logger.exception("Local front desk call failed")
            raise TransportFailure(str(e)) from e

    async def lookup_appointment(self, code: str) -> AppointmentDetails | None:
        return await self._run(lambda db: admission_service.lookup_appointment(db, code))

    async def check_in(self, code: str, *, begin_consultation: bool = False) -> AdmissionResult:
        return await self._run(
            lambda db: admission_service.check_in_by_code(
                db, code, now=self._clock(), begin_consultation=begin_consultation
            )
        )

    async def get_timesheet(self, employee_id: int, start: date, end: date) -> list[TimesheetSlotResponse]:
        def fetch(db: Session) -> list[TimesheetSlotResponse]:
            rows = timesheet_service.list_timesheets(db, employee_id=employee_id, start_date=start, end_date=end)
            return [TimesheetSlotResponse.model_validate(row) for row in rows]

        return await self._run(fetch)

    async def save_timesheet_slots(self, slots: Sequence[SlotTuple]) -> BulkTimesheetResponse:
        def save(db: Session) -> BulkTimesheetResponse:
            payload = [TimesheetSlotCreate.model_validate(item) for item in _slot_payload(slots)]
            inserted, skipped, errors = timesheet_service.save_timesheet_slots(db, payload)
            return BulkTimesheetResponse(
                message=f"Processed {len(payload)} timesheet records",
                inserted=len(inserted),
                skipped=skipped,
                failed=len(errors),
                data=[TimesheetSlotResponse.model_validate(row) for row in inserted],
                errors=errors,
            )

        return await self._run(save)

    async def get_current_queue(self, employee_id: int | None = None) -> list[VisitEntry]:
        return await self._run(
            lambda db: visit_service.list_current_queue(db, day=self._clock().date(), employee_id=employee_id)
        )

    async def set_visit_status(
        self,
        record_no: int,
        new_status: VisitStatus,
        *,
        expected: VisitStatus | None = None,
    ) -> VisitEntry:
        action = ACTION_FOR_TARGET.get(new_status)
        if action is None:
            raise TransitionConflict(f"No action leads to status {new_status.value}.", record_no=record_no)

        return await self._run(
            lambda db: visit_service.transition_visit(db, record_no, action, now=self._clock(), expected=expected)
        )
