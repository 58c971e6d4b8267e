import asyncio
from datetime import date, datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.core.redis as redis_module
from app.core.database import get_db
from app.dependencies.frontdesk import get_now
from app.main import app
from app.models.base import Base
from app.models.employee import Employee
from app.models.patient import Patient
from app.models.timesheet import TimesheetSlot
from app.models.visit import VisitRecord, VisitStatus, VisitType

# Monday 2024-06-10, 09:05 clinic time
NOW = datetime(2024, 6, 10, 9, 5)
TODAY = NOW.date()


# --- Manual scheduler: timers and background jobs under test control ---


class ManualHandle:
    def __init__(self, when: float, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualJob:
    def __init__(self, job, on_done) -> None:
        self.job = job
        self.on_done = on_done
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Scheduler with a fake clock. Timers fire only from advance(); submitted
    jobs run only from run_jobs(), each in its own event loop.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualHandle] = []
        self.jobs: list[ManualJob] = []

    def call_later(self, delay, callback) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback)
        self.timers.append(handle)
        return handle

    def submit(self, job, on_done) -> ManualJob:
        handle = ManualJob(job, on_done)
        self.jobs.append(handle)
        return handle

    @property
    def active_timers(self) -> list[ManualHandle]:
        return [t for t in self.timers if not t.cancelled]

    @property
    def pending_jobs(self) -> list[ManualJob]:
        return [j for j in self.jobs if not j.cancelled]

    def run_jobs(self) -> None:
        while self.jobs:
            handle = self.jobs.pop(0)
            if handle.cancelled:
                continue
            try:
                result = asyncio.run(handle.job())
            except Exception as e:
                handle.on_done(None, e)
            else:
                handle.on_done(result, None)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = target
        self.timers = [t for t in self.timers if not t.cancelled]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


# --- Database ---


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(redis_module, "get_redis_client", lambda: None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Data helpers ---


@pytest.fixture
def doctor(db) -> Employee:
    employee = Employee(first_name="Maria", last_name="Santos", position="General Medicine")
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


@pytest.fixture
def patient(db) -> Patient:
    p = Patient(first_name="Juan", last_name="Dela Cruz")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def make_visit(db, patient, doctor):
    def _make(
        code: str,
        *,
        day: date = TODAY,
        at: time = time(9, 0),
        status: VisitStatus = VisitStatus.SCHEDULED,
        employee_id: int | None = None,
        patient_id: int | None = None,
    ) -> VisitRecord:
        record = VisitRecord(
            patient_id=patient_id or patient.patient_id,
            employee_id=employee_id or doctor.employee_id,
            appointment_code=code,
            visit_status=status,
            visit_type=VisitType.SCHEDULED,
            date_scheduled=day,
            time_scheduled=at,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make


@pytest.fixture
def make_slot(db, doctor):
    def _make(day: date, label: str, *, capacity: int = 5, employee_id: int | None = None) -> TimesheetSlot:
        slot = TimesheetSlot(
            employee_id=employee_id or doctor.employee_id,
            timesheet_date=day,
            timesheet_time=label,
            max_appointment=capacity,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    return _make
