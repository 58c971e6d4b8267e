import asyncio
import json
from datetime import date, time

import httpx
import pytest

from app.core.exceptions import TransitionConflict, TransportFailure
from app.frontdesk.gateway import HttpFrontDeskGateway, LocalFrontDeskGateway
from app.frontdesk.timesheet_editor import TimesheetEditor
from app.frontdesk.views import QueueScreenView
from app.models.visit import VisitStatus, VisitType
from app.schemas.admission import AdmissionDecision
from app.schemas.timesheet import BulkTimesheetResponse, TimesheetSlotResponse
from app.schemas.visit import VisitEntry
from app.services.timesheet_service import SlotState

from conftest import NOW, TODAY


def entry(record_no: int, status: VisitStatus, at: time = time(9, 0)) -> VisitEntry:
    return VisitEntry(
        record_no=record_no,
        appointment_code=f"APT-{record_no:03d}",
        patient_id=record_no,
        employee_id=7,
        patient_name=f"Patient {record_no}",
        doctor_name="Dr. Maria Santos",
        visit_status=status,
        visit_type=VisitType.SCHEDULED,
        date_scheduled=TODAY,
        time_scheduled=at,
    )


class FakeGateway:
    def __init__(self):
        self.snapshots: list[list[VisitEntry]] = []
        self.queue_calls = 0
        self.status_calls = []
        self.status_error: Exception | None = None
        self.saved = []
        self.save_error: Exception | None = None
        self.timesheet_rows: list[TimesheetSlotResponse] = []

    async def get_current_queue(self, employee_id=None):
        self.queue_calls += 1
        if not self.snapshots:
            return []
        return self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]

    async def set_visit_status(self, record_no, new_status, *, expected=None):
        self.status_calls.append((record_no, new_status, expected))
        if self.status_error:
            raise self.status_error

    async def get_timesheet(self, employee_id, start, end):
        return self.timesheet_rows

    async def save_timesheet_slots(self, slots):
        if self.save_error:
            raise self.save_error
        self.saved.append(list(slots))
        return BulkTimesheetResponse(message="ok", inserted=len(slots), skipped=0, failed=0, data=[])


# --- Queue screen ---


def make_screen(scheduler, gateway, played):
    return QueueScreenView(
        gateway,
        scheduler,
        player=played.append,
        poll_interval=10,
        clock=lambda: NOW,
    )


def test_queue_screen_polls_and_announces_changes(scheduler):
    gateway = FakeGateway()
    a, b = entry(1, VisitStatus.CURRENT), entry(2, VisitStatus.CURRENT)
    gateway.snapshots = [[a], [a], [b], [b], [a]]
    played = []
    screen = make_screen(scheduler, gateway, played)

    screen.start()
    scheduler.run_jobs()
    for _ in range(4):
        scheduler.advance(10)
        scheduler.run_jobs()

    assert gateway.queue_calls == 5
    assert len(played) == 3
    screen.close()


def test_queue_screen_view_groups_snapshot(scheduler):
    gateway = FakeGateway()
    gateway.snapshots = [[entry(2, VisitStatus.QUEUED, time(10, 0)), entry(1, VisitStatus.CURRENT)]]
    screen = make_screen(scheduler, gateway, [])

    screen.start()
    scheduler.run_jobs()

    view = screen.view()
    assert [e.record_no for e in view.now_serving] == [1]
    assert [e.record_no for e in view.waiting] == [2]
    screen.close()


def test_slow_poll_does_not_stack_requests(scheduler):
    gateway = FakeGateway()
    screen = make_screen(scheduler, gateway, [])

    screen.start()
    scheduler.advance(10)
    scheduler.advance(10)
    scheduler.run_jobs()

    assert gateway.queue_calls == 1
    screen.close()


def test_poll_failure_is_reported_and_polling_continues(scheduler):
    class Flaky(FakeGateway):
        async def get_current_queue(self, employee_id=None):
            self.queue_calls += 1
            if self.queue_calls == 1:
                raise TransportFailure("offline")
            return [entry(1, VisitStatus.CURRENT)]

    played = []
    gateway = Flaky()
    screen = make_screen(scheduler, gateway, played)

    screen.start()
    scheduler.run_jobs()
    assert isinstance(screen.last_error, TransportFailure)

    scheduler.advance(10)
    scheduler.run_jobs()
    assert screen.last_error is None
    assert len(played) == 1
    screen.close()


def test_close_cancels_polling_and_drops_late_snapshot(scheduler):
    gateway = FakeGateway()
    gateway.snapshots = [[entry(1, VisitStatus.CURRENT)]]
    played = []
    screen = make_screen(scheduler, gateway, played)

    screen.start()
    screen.close()
    scheduler.run_jobs()
    scheduler.advance(60)
    scheduler.run_jobs()

    assert played == []
    assert scheduler.active_timers == []


def test_begin_goes_through_gateway_then_updates_view(scheduler):
    gateway = FakeGateway()
    gateway.snapshots = [[entry(1, VisitStatus.QUEUED)]]
    screen = make_screen(scheduler, gateway, [])
    screen.start()
    scheduler.run_jobs()

    updated = asyncio.run(screen.begin(1))

    assert updated.visit_status == VisitStatus.CURRENT
    assert gateway.status_calls == [(1, VisitStatus.CURRENT, VisitStatus.QUEUED)]
    assert [e.record_no for e in screen.view().now_serving] == [1]
    screen.close()


def test_rejected_begin_keeps_local_state_and_resyncs(scheduler):
    gateway = FakeGateway()
    gateway.snapshots = [[entry(1, VisitStatus.QUEUED)]]
    gateway.status_error = TransitionConflict("changed elsewhere")
    screen = make_screen(scheduler, gateway, [])
    screen.start()
    scheduler.run_jobs()

    assert asyncio.run(screen.begin(1)) is None

    assert isinstance(screen.last_error, TransitionConflict)
    assert screen.queue.get(1).visit_status == VisitStatus.QUEUED
    # A re-poll was queued
    assert len(scheduler.pending_jobs) == 1
    screen.close()


def test_begin_refused_locally_when_doctor_busy(scheduler):
    gateway = FakeGateway()
    gateway.snapshots = [[entry(1, VisitStatus.CURRENT), entry(2, VisitStatus.QUEUED)]]
    screen = make_screen(scheduler, gateway, [])
    screen.start()
    scheduler.run_jobs()

    assert asyncio.run(screen.begin(2)) is None
    assert gateway.status_calls == []
    screen.close()


# --- Timesheet editor ---

MONDAY = date(2024, 6, 10)


def test_editor_requires_doctor():
    from app.core.exceptions import NoDoctorSelected

    with pytest.raises(NoDoctorSelected):
        TimesheetEditor(FakeGateway(), None, MONDAY)


def test_editor_saves_only_new_slots_and_keeps_selection_on_failure():
    gateway = FakeGateway()
    gateway.timesheet_rows = [
        TimesheetSlotResponse(
            record_id=1, employee_id=7, timesheet_date=MONDAY, timesheet_time="09:00 AM", max_appointment=5
        )
    ]
    editor = TimesheetEditor(gateway, 7, MONDAY)
    asyncio.run(editor.load())

    editor.grid.select(MONDAY, "09:00 AM")
    editor.toggle(MONDAY, "10:00 AM")

    gateway.save_error = TransportFailure("offline")
    with pytest.raises(TransportFailure):
        asyncio.run(editor.save())
    assert editor.grid.classify_slot(MONDAY, "10:00 AM") == SlotState.SELECTED

    gateway.save_error = None
    asyncio.run(editor.save())
    assert gateway.saved == [[(7, MONDAY, "10:00 AM")]]
    assert editor.grid.classify_slot(MONDAY, "10:00 AM") == SlotState.COMMITTED
    assert asyncio.run(editor.save()) is None


def test_editor_week_navigation():
    editor = TimesheetEditor(FakeGateway(), 7, MONDAY)
    grid = asyncio.run(editor.next_week())
    assert grid.week_start == date(2024, 6, 16)
    grid = asyncio.run(editor.previous_week())
    assert grid.week_start == date(2024, 6, 9)


# --- Gateways ---


def test_local_gateway_round_trip(session_factory, doctor, make_visit):
    visit = make_visit("APT-2024-001")
    gateway = LocalFrontDeskGateway(session_factory, clock=lambda: NOW)

    found = asyncio.run(gateway.lookup_appointment("apt-2024-001"))
    assert found.record_no == visit.record_no

    result = asyncio.run(gateway.check_in("APT-2024-001"))
    assert result.decision == AdmissionDecision.ADMIT

    queue = asyncio.run(gateway.get_current_queue(doctor.employee_id))
    assert [e.record_no for e in queue] == [visit.record_no]

    updated = asyncio.run(
        gateway.set_visit_status(visit.record_no, VisitStatus.CURRENT, expected=VisitStatus.QUEUED)
    )
    assert updated.visit_status == VisitStatus.CURRENT


def test_local_gateway_rejects_stale_expected_status(session_factory, make_visit):
    visit = make_visit("APT-1", status=VisitStatus.QUEUED)
    gateway = LocalFrontDeskGateway(session_factory, clock=lambda: NOW)

    with pytest.raises(TransitionConflict):
        asyncio.run(gateway.set_visit_status(visit.record_no, VisitStatus.CURRENT, expected=VisitStatus.SCHEDULED))


def test_local_gateway_saves_timesheets(session_factory, doctor):
    gateway = LocalFrontDeskGateway(session_factory, clock=lambda: NOW)

    response = asyncio.run(gateway.save_timesheet_slots([(doctor.employee_id, MONDAY, "09:00 AM")]))
    rows = asyncio.run(gateway.get_timesheet(doctor.employee_id, MONDAY, MONDAY))

    assert response.inserted == 1
    assert [r.timesheet_time for r in rows] == ["09:00 AM"]


def _http_gateway(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://frontdesk.test")
    return HttpFrontDeskGateway(client=client)


def test_http_gateway_maps_409_to_conflict():
    def handler(request):
        assert request.method == "PATCH"
        assert request.url.path == "/api/v1/visits/5/begin"
        return httpx.Response(409, json={"detail": {"message": "Doctor is busy", "record_no": 5}})

    gateway = _http_gateway(handler)
    with pytest.raises(TransitionConflict, match="Doctor is busy"):
        asyncio.run(gateway.set_visit_status(5, VisitStatus.CURRENT))


def test_http_gateway_maps_connection_errors_to_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    gateway = _http_gateway(handler)
    with pytest.raises(TransportFailure):
        asyncio.run(gateway.check_in("APT-1"))


def test_http_gateway_check_in_and_lookup():
    def handler(request):
        if request.url.path == "/api/v1/appointments/scan":
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={"decision": "EXPIRED", "message": "Appointment date has already passed.", "appointment_code": body["appointment_code"]},
            )
        return httpx.Response(404, json={"detail": "Appointment not found"})

    gateway = _http_gateway(handler)

    result = asyncio.run(gateway.check_in("APT-9"))
    assert result.decision == AdmissionDecision.EXPIRED
    assert asyncio.run(gateway.lookup_appointment("APT-9")) is None


def test_http_gateway_sends_bulk_slots():
    seen = {}

    def handler(request):
        seen["payload"] = json.loads(request.content)
        return httpx.Response(201, json={"message": "ok", "inserted": 1, "skipped": 0, "failed": 0, "data": []})

    gateway = _http_gateway(handler)
    response = asyncio.run(gateway.save_timesheet_slots([(7, MONDAY, "09:00 AM")]))

    assert response.inserted == 1
    assert seen["payload"] == [{"employee_id": 7, "timesheet_date": "2024-06-10", "timesheet_time": "09:00 AM"}]


def test_http_gateway_sends_expected_status():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["expected"] = request.url.params.get("expected")
        return httpx.Response(200, json=entry(5, VisitStatus.CANCELLED).model_dump(mode="json"))

    gateway = _http_gateway(handler)
    updated = asyncio.run(gateway.set_visit_status(5, VisitStatus.CANCELLED, expected=VisitStatus.SCHEDULED))

    assert seen == {"path": "/api/v1/visits/5/cancel", "expected": "Scheduled"}
    assert updated.visit_status == VisitStatus.CANCELLED


def test_editor_keeps_slots_the_server_rejected(session_factory):
    gateway = LocalFrontDeskGateway(session_factory, clock=lambda: NOW)
    # No such doctor: every slot comes back in `errors`
    editor = TimesheetEditor(gateway, 999, MONDAY)
    asyncio.run(editor.load())
    editor.toggle(MONDAY, "10:00 AM")

    response = asyncio.run(editor.save())

    assert response.inserted == 0
    assert response.failed == 1
    assert editor.grid.classify_slot(MONDAY, "10:00 AM") == SlotState.SELECTED
    assert editor.grid.pending_slots() == [(999, MONDAY, "10:00 AM")]
    assert asyncio.run(gateway.get_timesheet(999, MONDAY, MONDAY)) == []
