# app/services/visit_queue_service.py
"""
Visit lifecycle and queue ordering.

    Scheduled -> Queued -> Current -> Completed
    Scheduled | Queued -> Cancelled

- Completed / Cancelled are terminal.
- At most one Current visit per doctor. begin() refuses while another visit
  of the same doctor is Current; there is no automatic demotion.
- Every transition is written through the status writer first. The local
  queue only changes after the write returned; a failed write changes nothing.

The same VisitQueue runs on the server (writer = conditional UPDATE) and on
queue-screen stations (writer = REST call).
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from app.core.exceptions import TransitionConflict, VisitNotFound
from app.models.visit import TERMINAL_STATUSES, VisitStatus
from app.schemas.visit import VisitEntry
from app.utils.datetime_utils import clinic_now

logger = logging.getLogger(__name__)


class QueueAction(str, Enum):
    ADMIT = "admit"
    BEGIN = "begin"
    COMPLETE = "complete"
    CANCEL = "cancel"
    RESUME = "resume"


# action -> (allowed source statuses, target status)
TRANSITIONS: dict[QueueAction, tuple[frozenset[VisitStatus], VisitStatus]] = {
    QueueAction.ADMIT: (frozenset({VisitStatus.SCHEDULED, VisitStatus.QUEUED}), VisitStatus.QUEUED),
    QueueAction.BEGIN: (frozenset({VisitStatus.QUEUED}), VisitStatus.CURRENT),
    QueueAction.COMPLETE: (frozenset({VisitStatus.CURRENT}), VisitStatus.COMPLETED),
    QueueAction.CANCEL: (frozenset({VisitStatus.SCHEDULED, VisitStatus.QUEUED}), VisitStatus.CANCELLED),
    QueueAction.RESUME: (frozenset({VisitStatus.CURRENT}), VisitStatus.CURRENT),
}

# Target status -> the action that produces it (used by REST writers)
ACTION_FOR_TARGET: dict[VisitStatus, QueueAction] = {
    VisitStatus.QUEUED: QueueAction.ADMIT,
    VisitStatus.CURRENT: QueueAction.BEGIN,
    VisitStatus.COMPLETED: QueueAction.COMPLETE,
    VisitStatus.CANCELLED: QueueAction.CANCEL,
}


class StatusWriter(Protocol):
    def __call__(self, record_no: int, new_status: VisitStatus, *, expected: VisitStatus) -> None: ...


def plan_transition(
    record: VisitEntry,
    action: QueueAction,
    *,
    current_for_doctor: Iterable[VisitEntry] = (),
    today: date,
) -> VisitStatus | None:
    """
    Decide the status a transition leads to.

    Returns the target status, or None when the action is a legal no-op
    (resume on a Current visit, admit on an already Queued visit).

    Raises:
        TransitionConflict: the action is not legal from the record's state.
    """
    status = record.visit_status
    allowed, target = TRANSITIONS[action]

    if status in TERMINAL_STATUSES:
        raise TransitionConflict(
            f"Visit {record.record_no} is already {status.value}. No further actions are allowed.",
            record_no=record.record_no,
        )
    if status not in allowed:
        raise TransitionConflict(
            f"Cannot {action.value} visit {record.record_no} from status {status.value}.",
            record_no=record.record_no,
        )

    if action == QueueAction.ADMIT and record.date_scheduled < today:
        raise TransitionConflict(
            f"Visit {record.record_no} was scheduled for {record.date_scheduled.isoformat()} and can no longer be admitted.",
            record_no=record.record_no,
        )

    if action == QueueAction.BEGIN:
        for other in current_for_doctor:
            if other.record_no != record.record_no and other.visit_status == VisitStatus.CURRENT:
                raise TransitionConflict(
                    f"{other.doctor_name} is already serving visit {other.record_no}. "
                    "Complete that consultation first.",
                    record_no=record.record_no,
                    blocking_record_no=other.record_no,
                )

    if target == status:
        return None
    return target


def _sort_key(entry: VisitEntry) -> tuple:
    return (entry.date_scheduled, entry.time_scheduled, entry.record_no)


@dataclass
class QueueView:
    now_serving: list[VisitEntry] = field(default_factory=list)
    waiting: list[VisitEntry] = field(default_factory=list)
    upcoming: list[VisitEntry] = field(default_factory=list)

    @property
    def first_serving(self) -> VisitEntry | None:
        return self.now_serving[0] if self.now_serving else None


def build_queue_view(records: Iterable[VisitEntry], *, employee_id: int | None = None) -> QueueView:
    """
    Group non-terminal visits for display, each group ordered by scheduled
    time ascending. employee_id narrows the view to one doctor.
    """
    view = QueueView()
    ordered = sorted(
        (r for r in records if employee_id is None or r.employee_id == employee_id),
        key=_sort_key,
    )
    for record in ordered:
        if record.visit_status == VisitStatus.CURRENT:
            view.now_serving.append(record)
        elif record.visit_status == VisitStatus.QUEUED:
            view.waiting.append(record)
        elif record.visit_status == VisitStatus.SCHEDULED:
            view.upcoming.append(record)
    return view


class VisitQueue:
    """
    In-memory visit queue for one context (a doctor or the whole facility),
    indexed by status and by doctor.
    """

    def __init__(
        self,
        records: Iterable[VisitEntry] = (),
        *,
        writer: StatusWriter | None = None,
        clock: Callable[[], datetime] = clinic_now,
    ) -> None:
        self._writer = writer
        self._clock = clock
        self._records: dict[int, VisitEntry] = {}
        self._by_status: dict[VisitStatus, set[int]] = defaultdict(set)
        self._by_doctor: dict[int, set[int]] = defaultdict(set)
        self.sync(records)

    def sync(self, records: Iterable[VisitEntry]) -> None:
        """Replace the queue contents with a fresh snapshot."""
        self._records.clear()
        self._by_status.clear()
        self._by_doctor.clear()
        for record in records:
            self._put(record)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_no: int) -> bool:
        return record_no in self._records

    def get(self, record_no: int) -> VisitEntry:
        try:
            return self._records[record_no]
        except KeyError:
            raise VisitNotFound(record_no) from None

    def records(self) -> list[VisitEntry]:
        return sorted(self._records.values(), key=_sort_key)

    def with_status(self, status: VisitStatus) -> list[VisitEntry]:
        return sorted((self._records[no] for no in self._by_status.get(status, ())), key=_sort_key)

    def current_for(self, employee_id: int) -> list[VisitEntry]:
        return [
            self._records[no]
            for no in self._by_doctor.get(employee_id, ())
            if self._records[no].visit_status == VisitStatus.CURRENT
        ]

    def view(self, employee_id: int | None = None) -> QueueView:
        return build_queue_view(self._records.values(), employee_id=employee_id)

    # -------------------------
    # Transitions
    # -------------------------

    def admit(self, record_no: int) -> VisitEntry:
        return self.apply(record_no, QueueAction.ADMIT)

    def begin(self, record_no: int) -> VisitEntry:
        return self.apply(record_no, QueueAction.BEGIN)

    def complete(self, record_no: int) -> VisitEntry:
        return self.apply(record_no, QueueAction.COMPLETE)

    def cancel(self, record_no: int) -> VisitEntry:
        return self.apply(record_no, QueueAction.CANCEL)

    def resume(self, record_no: int) -> VisitEntry:
        return self.apply(record_no, QueueAction.RESUME)

    def apply(self, record_no: int, action: QueueAction) -> VisitEntry:
        record, target = self._plan(record_no, action)
        if target is None:
            return record

        if self._writer is None:
            raise TypeError("This queue has no synchronous status writer; use apply_remote().")

        # Persist first; if this raises, the local queue is untouched.
        self._writer(record_no, target, expected=record.visit_status)
        return self._commit(record, target)

    async def apply_remote(
        self,
        record_no: int,
        action: QueueAction,
        send: Callable[..., Awaitable[object]],
    ) -> VisitEntry:
        """
        Same as apply(), for stations whose status write is an async call.
        `send(record_no, target, expected=...)` must raise on failure.
        """
        record, target = self._plan(record_no, action)
        if target is None:
            return record

        await send(record_no, target, expected=record.visit_status)
        return self._commit(record, target)

    def _plan(self, record_no: int, action: QueueAction) -> tuple[VisitEntry, VisitStatus | None]:
        record = self.get(record_no)
        target = plan_transition(
            record,
            action,
            current_for_doctor=self.current_for(record.employee_id),
            today=self._clock().date(),
        )
        return record, target

    def _commit(self, record: VisitEntry, target: VisitStatus) -> VisitEntry:
        updated = record.model_copy(update={"visit_status": target})
        self._put(updated)
        logger.info("Visit %s: %s -> %s", record.record_no, record.visit_status.value, target.value)
        return updated

    def _put(self, record: VisitEntry) -> None:
        previous = self._records.get(record.record_no)
        if previous is not None:
            self._by_status[previous.visit_status].discard(record.record_no)
            self._by_doctor[previous.employee_id].discard(record.record_no)
        self._records[record.record_no] = record
        self._by_status[record.visit_status].add(record.record_no)
        self._by_doctor[record.employee_id].add(record.record_no)
