import asyncio
from datetime import date, datetime, time

import pytest

from app.core.exceptions import TransitionConflict, TransportFailure, VisitNotFound
from app.models.visit import VisitStatus, VisitType
from app.schemas.visit import VisitEntry
from app.services.visit_queue_service import (
    QueueAction,
    VisitQueue,
    build_queue_view,
    plan_transition,
)

TODAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 10, 9, 5)


def entry(record_no: int, status: VisitStatus, *, doctor: int = 7, at: time = time(9, 0), day: date = TODAY):
    return VisitEntry(
        record_no=record_no,
        appointment_code=f"APT-{record_no:03d}",
        patient_id=100 + record_no,
        employee_id=doctor,
        patient_name=f"Patient {record_no}",
        doctor_name=f"Dr. {doctor}",
        visit_status=status,
        visit_type=VisitType.SCHEDULED,
        date_scheduled=day,
        time_scheduled=at,
    )


class RecordingWriter:
    def __init__(self, fail: Exception | None = None):
        self.calls = []
        self.fail = fail

    def __call__(self, record_no, new_status, *, expected):
        self.calls.append((record_no, new_status, expected))
        if self.fail:
            raise self.fail


def make_queue(*records, writer=None):
    return VisitQueue(records, writer=writer or RecordingWriter(), clock=lambda: NOW)


def test_full_lifecycle():
    writer = RecordingWriter()
    queue = make_queue(entry(1, VisitStatus.SCHEDULED), writer=writer)

    queue.admit(1)
    queue.begin(1)
    done = queue.complete(1)

    assert done.visit_status == VisitStatus.COMPLETED
    assert writer.calls == [
        (1, VisitStatus.QUEUED, VisitStatus.SCHEDULED),
        (1, VisitStatus.CURRENT, VisitStatus.QUEUED),
        (1, VisitStatus.COMPLETED, VisitStatus.CURRENT),
    ]


def test_begin_refused_while_doctor_has_current_visit():
    writer = RecordingWriter()
    queue = make_queue(entry(1, VisitStatus.CURRENT), entry(2, VisitStatus.QUEUED), writer=writer)

    with pytest.raises(TransitionConflict) as exc:
        queue.begin(2)

    assert exc.value.blocking_record_no == 1
    assert writer.calls == []
    assert queue.get(1).visit_status == VisitStatus.CURRENT
    assert queue.get(2).visit_status == VisitStatus.QUEUED


def test_begin_allowed_when_other_doctor_is_busy():
    queue = make_queue(entry(1, VisitStatus.CURRENT, doctor=7), entry(2, VisitStatus.QUEUED, doctor=8))
    assert queue.begin(2).visit_status == VisitStatus.CURRENT


def test_admit_on_queued_is_a_no_op_without_write():
    writer = RecordingWriter()
    queue = make_queue(entry(1, VisitStatus.QUEUED), writer=writer)

    assert queue.admit(1).visit_status == VisitStatus.QUEUED
    assert writer.calls == []


def test_admit_refused_after_visit_date():
    queue = make_queue(entry(1, VisitStatus.SCHEDULED, day=date(2024, 6, 9)))
    with pytest.raises(TransitionConflict):
        queue.admit(1)


def test_resume_only_from_current():
    writer = RecordingWriter()
    queue = make_queue(entry(1, VisitStatus.CURRENT), entry(2, VisitStatus.QUEUED), writer=writer)

    assert queue.resume(1).visit_status == VisitStatus.CURRENT
    with pytest.raises(TransitionConflict):
        queue.resume(2)
    assert writer.calls == []


@pytest.mark.parametrize("status", [VisitStatus.COMPLETED, VisitStatus.CANCELLED])
@pytest.mark.parametrize("action", list(QueueAction))
def test_terminal_states_never_leave(status, action):
    with pytest.raises(TransitionConflict):
        plan_transition(entry(1, status), action, today=TODAY)


def test_cancel_from_scheduled_and_queued_only():
    queue = make_queue(entry(1, VisitStatus.SCHEDULED), entry(2, VisitStatus.QUEUED), entry(3, VisitStatus.CURRENT))
    assert queue.cancel(1).visit_status == VisitStatus.CANCELLED
    assert queue.cancel(2).visit_status == VisitStatus.CANCELLED
    with pytest.raises(TransitionConflict):
        queue.cancel(3)


def test_failed_write_leaves_queue_untouched():
    writer = RecordingWriter(fail=TransportFailure("db down"))
    queue = make_queue(entry(1, VisitStatus.QUEUED), writer=writer)

    with pytest.raises(TransportFailure):
        queue.begin(1)

    assert queue.get(1).visit_status == VisitStatus.QUEUED
    assert queue.current_for(7) == []


def test_unknown_record_raises_visit_not_found():
    with pytest.raises(VisitNotFound):
        make_queue().begin(99)


def test_apply_without_writer_raises_type_error():
    queue = VisitQueue([entry(1, VisitStatus.QUEUED)], clock=lambda: NOW)
    with pytest.raises(TypeError):
        queue.begin(1)


def test_apply_remote_commits_after_send_returns():
    queue = VisitQueue([entry(1, VisitStatus.QUEUED)], clock=lambda: NOW)
    sent = []

    async def send(record_no, new_status, *, expected):
        sent.append((record_no, new_status, expected))

    updated = asyncio.run(queue.apply_remote(1, QueueAction.BEGIN, send))

    assert updated.visit_status == VisitStatus.CURRENT
    assert sent == [(1, VisitStatus.CURRENT, VisitStatus.QUEUED)]
    assert [e.record_no for e in queue.with_status(VisitStatus.CURRENT)] == [1]


def test_apply_remote_conflict_keeps_local_state():
    queue = VisitQueue([entry(1, VisitStatus.QUEUED)], clock=lambda: NOW)

    async def send(record_no, new_status, *, expected):
        raise TransitionConflict("changed elsewhere", record_no=record_no)

    with pytest.raises(TransitionConflict):
        asyncio.run(queue.apply_remote(1, QueueAction.BEGIN, send))
    assert queue.get(1).visit_status == VisitStatus.QUEUED


def test_queue_view_groups_and_orders_by_time():
    records = [
        entry(3, VisitStatus.QUEUED, at=time(11, 0)),
        entry(1, VisitStatus.QUEUED, at=time(9, 0)),
        entry(2, VisitStatus.CURRENT, at=time(8, 0)),
        entry(4, VisitStatus.SCHEDULED, at=time(13, 0)),
        entry(5, VisitStatus.COMPLETED, at=time(7, 0)),
    ]
    view = build_queue_view(records)

    assert [e.record_no for e in view.now_serving] == [2]
    assert [e.record_no for e in view.waiting] == [1, 3]
    assert [e.record_no for e in view.upcoming] == [4]
    assert view.first_serving.record_no == 2


def test_queue_view_for_one_doctor():
    records = [entry(1, VisitStatus.QUEUED, doctor=7), entry(2, VisitStatus.QUEUED, doctor=8)]
    assert [e.record_no for e in build_queue_view(records, employee_id=8).waiting] == [2]


def test_sync_replaces_indexes():
    queue = make_queue(entry(1, VisitStatus.CURRENT))
    queue.sync([entry(2, VisitStatus.QUEUED)])

    assert 1 not in queue
    assert len(queue) == 1
    assert queue.current_for(7) == []
