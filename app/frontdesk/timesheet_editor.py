# app/frontdesk/timesheet_editor.py
import logging
from datetime import date, timedelta

from app.core.exceptions import NoDoctorSelected, TransportFailure
from app.frontdesk.gateway import FrontDeskGateway
from app.schemas.timesheet import BulkTimesheetResponse
from app.services.timesheet_service import SlotState, TimesheetGrid, rejected_indexes

logger = logging.getLogger(__name__)


class TimesheetEditor:
    """
    Weekly availability editor for one doctor, on top of TimesheetGrid.
    Slots become committed only after the gateway accepted the save.
    """

    def __init__(self, gateway: FrontDeskGateway, employee_id: int | None, anchor: date) -> None:
        if employee_id is None:
            raise NoDoctorSelected()
        self._gateway = gateway
        self.employee_id = employee_id
        self.grid = TimesheetGrid(employee_id, anchor)

    async def load(self, anchor: date | None = None) -> TimesheetGrid:
        grid = TimesheetGrid(self.employee_id, anchor or self.grid.week_start)
        rows = await self._gateway.get_timesheet(self.employee_id, grid.week_start, grid.week_end)
        self.grid = TimesheetGrid(
            self.employee_id,
            grid.week_start,
            time_labels=grid.time_labels,
            committed=[(row.timesheet_date, row.timesheet_time) for row in rows],
        )
        return self.grid

    async def previous_week(self) -> TimesheetGrid:
        return await self.load(self.grid.week_start - timedelta(days=7))

    async def next_week(self) -> TimesheetGrid:
        return await self.load(self.grid.week_start + timedelta(days=7))

    def toggle(self, day: date, label: str) -> SlotState:
        return self.grid.toggle(day, label)

    async def save(self) -> BulkTimesheetResponse | None:
        """
        Send pending slots in one bulk call. Returns None when nothing is pending.
        On TransportFailure the grid keeps its selections for a retry.
        Items the server rejected stay selected.
        """
        slots = self.grid.pending_slots()
        if not slots:
            return None
        try:
            response = await self._gateway.save_timesheet_slots(slots)
        except TransportFailure:
            logger.warning("Timesheet save failed for employee %s; selections kept", self.employee_id)
            raise
        rejected = rejected_indexes(response)
        if rejected:
            logger.warning(
                "Server rejected %d of %d timesheet slots for employee %s: %s",
                len(rejected),
                len(slots),
                self.employee_id,
                "; ".join(error.error for error in response.errors),
            )
        self.grid.mark_committed(slots, rejected=rejected)
        return response
