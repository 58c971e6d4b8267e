# app/frontdesk/views.py
"""
Station views: the scan station at the front desk and the queue screen in
the waiting room (or a doctor's room, when bound to one doctor).

A view owns every timer and request it starts. close() cancels them and any
response that still arrives afterwards is ignored.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from app.core.config import get_settings
from app.core.exceptions import FrontDeskError, TransitionConflict, TransportFailure
from app.frontdesk.announcer import Announcement, LiveQueueAnnouncer, Player
from app.frontdesk.gateway import FrontDeskGateway
from app.frontdesk.polling import PollingTask
from app.frontdesk.scan_pipeline import AdmissionSession, ScanInputPipeline
from app.frontdesk.scheduling import Scheduler
from app.schemas.admission import AdmissionResult
from app.schemas.visit import VisitEntry
from app.services.visit_queue_service import QueueAction, QueueView, VisitQueue
from app.utils.datetime_utils import clinic_now

logger = logging.getLogger(__name__)


class ScanStationView:
    def __init__(
        self,
        gateway: FrontDeskGateway,
        scheduler: Scheduler,
        *,
        begin_consultation: bool = False,
        on_result: Callable[[AdmissionResult], None] | None = None,
        on_error: Callable[[FrontDeskError], None] | None = None,
        on_cooldown: Callable[[int], None] | None = None,
    ) -> None:
        self._gateway = gateway
        self.begin_consultation = begin_consultation
        self.session = AdmissionSession()
        self.pipeline = ScanInputPipeline(
            self._check_in,
            scheduler,
            session=self.session,
            on_result=on_result,
            on_error=on_error,
            on_cooldown=on_cooldown,
        )

    async def _check_in(self, code: str) -> AdmissionResult:
        return await self._gateway.check_in(code, begin_consultation=self.begin_consultation)

    def scan(self, raw: str) -> bool:
        return self.pipeline.on_scan(raw)

    def type(self, text: str) -> None:
        self.pipeline.on_manual_input(text)

    def submit(self) -> bool:
        return self.pipeline.flush_manual()

    def dismiss(self) -> None:
        self.pipeline.clear_result()

    def status_line(self) -> str:
        s = self.session
        if s.in_flight:
            return "Checking appointment..."
        if s.last_error is not None:
            line = f"Error: {s.last_error}"
        elif s.last_result is not None:
            line = describe_result(s.last_result)
        else:
            line = "Ready to scan."
        if s.cooling_down:
            line += f" (next scan in {s.cooldown_remaining}s)"
        return line

    def close(self) -> None:
        self.pipeline.close()


def describe_result(result: AdmissionResult) -> str:
    parts = [f"[{result.decision.value}] {result.message}"]
    appt = result.appointment
    if appt is not None:
        parts.append(
            f"{appt.patient_name} with {appt.doctor_name} on {appt.date_scheduled.isoformat()} {appt.time_label}"
        )
    if result.suggested_time:
        parts.append(f"Closest available time today: {result.suggested_time}")
    return " | ".join(parts)


class QueueScreenView:
    """
    Polls the current queue, keeps a local VisitQueue in sync and announces
    every change of the patient being served.

    begin()/complete() go through the same state machine as the server; a
    rejected write leaves the local queue as it was and triggers a re-poll.
    """

    def __init__(
        self,
        gateway: FrontDeskGateway,
        scheduler: Scheduler,
        *,
        employee_id: int | None = None,
        player: Player | None = None,
        poll_interval: float | None = None,
        clock: Callable[[], datetime] = clinic_now,
        on_update: Callable[[QueueView, Announcement | None], None] | None = None,
    ) -> None:
        settings = get_settings()
        self._gateway = gateway
        self.employee_id = employee_id
        self.queue = VisitQueue(clock=clock)
        self.announcer = LiveQueueAnnouncer(player)
        self.last_error: FrontDeskError | None = None
        self._on_update = on_update
        self.closed = False
        self._poller = PollingTask(
            scheduler,
            settings.queue_poll_interval_seconds if poll_interval is None else poll_interval,
            self._fetch,
            self._on_snapshot,
            self._on_poll_error,
        )

    def start(self) -> None:
        self._poller.start()

    def refresh(self) -> None:
        self._poller.poll_now()

    def view(self) -> QueueView:
        return self.queue.view(self.employee_id)

    def close(self) -> None:
        self.closed = True
        self._poller.cancel()

    async def _fetch(self) -> list[VisitEntry]:
        return await self._gateway.get_current_queue(self.employee_id)

    def _on_snapshot(self, snapshot: list[VisitEntry]) -> None:
        if self.closed:
            return
        self.queue.sync(snapshot)
        self.last_error = None
        announcement = self.announcer.observe(snapshot)
        if self._on_update:
            self._on_update(self.view(), announcement)

    def _on_poll_error(self, error: BaseException) -> None:
        if self.closed:
            return
        self.last_error = error if isinstance(error, FrontDeskError) else TransportFailure(str(error))

    async def begin(self, record_no: int) -> VisitEntry | None:
        return await self._transition(record_no, QueueAction.BEGIN)

    async def complete(self, record_no: int) -> VisitEntry | None:
        return await self._transition(record_no, QueueAction.COMPLETE)

    async def _transition(self, record_no: int, action: QueueAction) -> VisitEntry | None:
        try:
            entry = await self.queue.apply_remote(record_no, action, self._gateway.set_visit_status)
        except TransitionConflict as e:
            logger.info("Visit %s %s rejected: %s", record_no, action.value, e)
            self.last_error = e
            if not self.closed:
                self.refresh()
            return None
        except TransportFailure as e:
            self.last_error = e
            return None

        if self.closed:
            return None
        self.last_error = None
        if self._on_update:
            self._on_update(self.view(), None)
        return entry
