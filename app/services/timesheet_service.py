# app/services/timesheet_service.py
"""
Doctor availability: the weekly timesheet grid and slot persistence.

TimesheetGrid is the editing-session object behind the weekly grid. It never
writes by itself; bulk_save() hands the new slots to a save callable and
only marks them committed once that call returns.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, time, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import InvalidSlot, NoDoctorSelected, TransportFailure
from app.models.employee import Employee
from app.models.timesheet import TimesheetSlot
from app.schemas.timesheet import BulkTimesheetError, BulkTimesheetResponse, TimesheetSlotCreate
from app.utils.datetime_utils import format_time_label, parse_time_label

logger = logging.getLogger(__name__)

# (employee_id, date, time label)
SlotTuple = tuple[int, date, str]

TimesheetFetcher = Callable[[int, date, date], Iterable[TimesheetSlot]]
# Returns the bulk response (its `errors` name rejected items by index) or None
TimesheetSaver = Callable[[list[SlotTuple]], BulkTimesheetResponse | None]


def bookable_time_labels(labels: Sequence[str] | None = None) -> tuple[str, ...]:
    """The fixed set of slot labels, normalised ("9:00 am" -> "09:00 AM")."""
    if labels is None:
        labels = get_settings().timesheet_time_labels
    return tuple(format_time_label(parse_time_label(label)) for label in labels)


def rejected_indexes(response: BulkTimesheetResponse | None) -> set[int]:
    if response is None:
        return set()
    return {error.index for error in response.errors}


class SlotState(str, Enum):
    COMMITTED = "COMMITTED"
    SELECTED = "SELECTED"
    EMPTY = "EMPTY"


def compute_week(day: date) -> list[date]:
    """
    The 7 dates of the week containing `day`, starting on the Sunday
    on or before it.
    """
    # date.weekday(): Monday=0 ... Sunday=6
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return [start + timedelta(days=offset) for offset in range(7)]


def time_label_sort_key(label: str) -> time:
    return parse_time_label(label)


class TimesheetGrid:
    """
    Slot states for one doctor and one week.

    - COMMITTED: slot already stored
    - SELECTED: chosen in this session, not yet saved
    - EMPTY: neither

    A committed slot may be toggled off; that is recorded as a removal
    request (see removal_requests()) and still reports COMMITTED.
    """

    def __init__(
        self,
        employee_id: int | None,
        anchor: date,
        *,
        time_labels: Sequence[str] | None = None,
        committed: Iterable[tuple[date, str]] = (),
    ) -> None:
        if employee_id is None:
            raise NoDoctorSelected()

        self.employee_id = employee_id
        self.week: tuple[date, ...] = tuple(compute_week(anchor))
        self.time_labels: tuple[str, ...] = bookable_time_labels(time_labels)

        self._committed: set[tuple[date, str]] = set()
        self._selected: set[tuple[date, str]] = set()
        self._removals: set[tuple[date, str]] = set()

        for day, label in committed:
            try:
                self._committed.add(self._key(day, label))
            except InvalidSlot:
                # Stored rows outside the grid's week or label set are not shown
                logger.debug("Ignoring committed slot outside grid: %s %s", day, label)

    @classmethod
    def load(
        cls,
        fetch: TimesheetFetcher,
        employee_id: int | None,
        anchor: date,
        *,
        time_labels: Sequence[str] | None = None,
    ) -> "TimesheetGrid":
        """
        Build a grid from persisted rows. Refuses to fetch when no doctor
        is bound to the session.
        """
        if employee_id is None:
            raise NoDoctorSelected()

        week = compute_week(anchor)
        rows = fetch(employee_id, week[0], week[-1])
        return cls(
            employee_id,
            anchor,
            time_labels=time_labels,
            committed=[(row.timesheet_date, row.timesheet_time) for row in rows],
        )

    # -------------------------
    # Queries
    # -------------------------

    @property
    def week_start(self) -> date:
        return self.week[0]

    @property
    def week_end(self) -> date:
        return self.week[-1]

    def classify_slot(self, day: date, label: str) -> SlotState:
        key = self._key(day, label)
        if key in self._committed:
            return SlotState.COMMITTED
        if key in self._selected:
            return SlotState.SELECTED
        return SlotState.EMPTY

    def rows(self) -> list[dict]:
        """Grid as rows of {time, slots: [{date, state}, ...]} for rendering."""
        return [
            {
                "time": label,
                "slots": [{"date": day, "state": self.classify_slot(day, label)} for day in self.week],
            }
            for label in self.time_labels
        ]

    def pending_slots(self) -> list[SlotTuple]:
        """Selected slots that are not already committed, in grid order."""
        pending = self._selected - self._committed
        ordered = sorted(pending, key=lambda key: (key[0], self.time_labels.index(key[1])))
        return [(self.employee_id, day, label) for day, label in ordered]

    def removal_requests(self) -> list[SlotTuple]:
        ordered = sorted(self._removals, key=lambda key: (key[0], self.time_labels.index(key[1])))
        return [(self.employee_id, day, label) for day, label in ordered]

    # -------------------------
    # Editing
    # -------------------------

    def select(self, day: date, label: str) -> SlotState:
        self._selected.add(self._key(day, label))
        return self.classify_slot(day, label)

    def toggle(self, day: date, label: str) -> SlotState:
        key = self._key(day, label)
        if key in self._committed:
            if key in self._removals:
                self._removals.discard(key)
            else:
                self._removals.add(key)
        elif key in self._selected:
            self._selected.discard(key)
        else:
            self._selected.add(key)
        return self.classify_slot(day, label)

    def bulk_save(self, save: TimesheetSaver) -> list[SlotTuple]:
        """
        Dispatch every selected-but-not-committed slot to `save` in one call.

        Slots the store accepted become COMMITTED; slots it rejected (listed
        by index in the response's `errors`) stay SELECTED. If `save` raises,
        nothing changes so the operator can retry without re-selecting.
        Returns the slots that were committed.
        """
        slots = self.pending_slots()
        if not slots:
            return []

        response = save(slots)
        return self.mark_committed(slots, rejected=rejected_indexes(response))

    def mark_committed(self, slots: Sequence[SlotTuple], *, rejected: Iterable[int] = ()) -> list[SlotTuple]:
        rejected = set(rejected)
        committed = []
        for index, (employee_id, day, label) in enumerate(slots):
            if index in rejected:
                continue
            key = self._key(day, label)
            self._committed.add(key)
            self._selected.discard(key)
            committed.append((employee_id, day, label))
        return committed

    def _key(self, day: date, label: str) -> tuple[date, str]:
        if day not in self.week:
            raise InvalidSlot(f"{day.isoformat()} is outside the week starting {self.week[0].isoformat()}")
        try:
            normalized = format_time_label(parse_time_label(label))
        except ValueError as e:
            raise InvalidSlot(str(e)) from e
        if normalized not in self.time_labels:
            raise InvalidSlot(f"{label!r} is not a bookable time slot")
        return day, normalized


# -------------------------
# Persistence
# -------------------------


def list_timesheets(
    db: Session,
    *,
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[TimesheetSlot]:
    """
    Timesheet rows with optional filters, ordered by date then time of day.
    """
    query = db.query(TimesheetSlot)

    if employee_id is not None:
        query = query.filter(TimesheetSlot.employee_id == employee_id)
    if start_date is not None:
        query = query.filter(TimesheetSlot.timesheet_date >= start_date)
    if end_date is not None:
        query = query.filter(TimesheetSlot.timesheet_date <= end_date)

    rows = query.all()
    return sorted(rows, key=lambda row: (row.timesheet_date, time_label_sort_key(row.timesheet_time)))


def save_timesheet_slots(
    db: Session,
    slots: Sequence[TimesheetSlotCreate],
    *,
    capacity: int | None = None,
) -> tuple[list[TimesheetSlot], int, list[BulkTimesheetError]]:
    """
    Insert slots in one transaction.

    Returns (inserted rows, number skipped as already stored, per-item errors).
    Raises TransportFailure if the transaction cannot be committed.
    """
    if capacity is None:
        capacity = get_settings().timesheet_slot_capacity

    inserted: list[TimesheetSlot] = []
    errors: list[BulkTimesheetError] = []
    skipped = 0
    seen: set[tuple[int, date, str]] = set()
    known_employees: dict[int, bool] = {}
    labels = bookable_time_labels()

    for index, slot in enumerate(slots):
        if slot.timesheet_time not in labels:
            errors.append(
                BulkTimesheetError(index=index, error=f"{slot.timesheet_time} is not a bookable time slot")
            )
            continue

        key = (slot.employee_id, slot.timesheet_date, slot.timesheet_time)
        if key in seen:
            skipped += 1
            continue
        seen.add(key)

        if slot.employee_id not in known_employees:
            known_employees[slot.employee_id] = (
                db.query(Employee.employee_id).filter(Employee.employee_id == slot.employee_id).first() is not None
            )
        if not known_employees[slot.employee_id]:
            errors.append(BulkTimesheetError(index=index, error=f"Employee {slot.employee_id} not found"))
            continue

        existing = (
            db.query(TimesheetSlot.record_id)
            .filter(
                TimesheetSlot.employee_id == slot.employee_id,
                TimesheetSlot.timesheet_date == slot.timesheet_date,
                TimesheetSlot.timesheet_time == slot.timesheet_time,
            )
            .first()
        )
        if existing:
            skipped += 1
            continue

        row = TimesheetSlot(
            employee_id=slot.employee_id,
            timesheet_date=slot.timesheet_date,
            timesheet_time=slot.timesheet_time,
            max_appointment=capacity,
        )
        db.add(row)
        inserted.append(row)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to save %d timesheet slots", len(inserted))
        raise TransportFailure("Failed to save timesheet slots.") from e

    for row in inserted:
        db.refresh(row)

    logger.info("Saved %d timesheet slots (%d skipped, %d failed)", len(inserted), skipped, len(errors))
    return inserted, skipped, errors


def available_times(
    db: Session,
    employee_id: int,
    day: date,
    *,
    now: datetime,
) -> list[str]:
    """
    Bookable time labels for a doctor on a day: slots with remaining
    capacity, and for today only those not already past.
    """
    rows = (
        db.query(TimesheetSlot)
        .filter(
            TimesheetSlot.employee_id == employee_id,
            TimesheetSlot.timesheet_date == day,
            TimesheetSlot.max_appointment > 0,
        )
        .all()
    )

    labels = []
    for row in rows:
        try:
            slot_time = parse_time_label(row.timesheet_time)
        except ValueError:
            logger.warning("Skipping timesheet row %s with bad time label %r", row.record_id, row.timesheet_time)
            continue
        if day < now.date() or (day == now.date() and slot_time < now.time().replace(second=0, microsecond=0)):
            continue
        labels.append((slot_time, row.timesheet_time))

    return [label for _, label in sorted(labels)]


def closest_available_time(
    db: Session,
    employee_id: int,
    day: date,
    original: time,
    *,
    now: datetime,
) -> str | None:
    """Remaining slot label nearest to the originally scheduled time, if any."""
    candidates = available_times(db, employee_id, day, now=now)
    if not candidates:
        return None

    original_minutes = original.hour * 60 + original.minute

    def distance(label: str) -> int:
        slot = parse_time_label(label)
        return abs(slot.hour * 60 + slot.minute - original_minutes)

    return min(candidates, key=distance)


def reserve_slot(db: Session, employee_id: int, day: date, label: str) -> bool:
    """
    Take one unit of capacity from a slot. Does not commit.
    Returns False when the slot does not exist or is full.
    """
    updated = (
        db.query(TimesheetSlot)
        .filter(
            TimesheetSlot.employee_id == employee_id,
            TimesheetSlot.timesheet_date == day,
            TimesheetSlot.timesheet_time == label,
            TimesheetSlot.max_appointment > 0,
        )
        .update({TimesheetSlot.max_appointment: TimesheetSlot.max_appointment - 1}, synchronize_session=False)
    )
    return updated > 0


def release_slot(db: Session, employee_id: int, day: date, label: str) -> None:
    """Give one unit of capacity back to a slot. Does not commit."""
    db.query(TimesheetSlot).filter(
        TimesheetSlot.employee_id == employee_id,
        TimesheetSlot.timesheet_date == day,
        TimesheetSlot.timesheet_time == label,
    ).update({TimesheetSlot.max_appointment: TimesheetSlot.max_appointment + 1}, synchronize_session=False)
