# app/models/visit.py
from datetime import date, datetime, time
from enum import Enum as PyEnum

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.employee import Employee
from app.models.patient import Patient


class VisitStatus(str, PyEnum):
    SCHEDULED = "Scheduled"
    QUEUED = "Queued"
    CURRENT = "Current"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset({VisitStatus.COMPLETED, VisitStatus.CANCELLED})


class VisitType(str, PyEnum):
    SCHEDULED = "Scheduled/Follow-Up"
    WALK_IN = "Walk-in"
    EMERGENCY = "Emergency"


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
    return [member.value for member in enum_cls]


class VisitRecord(Base):
    """
    The queueable unit: one patient's encounter with one doctor.

    Status changes only through the visit queue state machine
    (app/services/visit_queue_service.py).
    """

    __tablename__ = "patient_visit_record"
    __table_args__ = (
        # At most one Current visit per doctor
        Index(
            "uq_visit_one_current_per_doctor",
            "employee_id",
            unique=True,
            postgresql_where=text("visit_status = 'Current'"),
            sqlite_where=text("visit_status = 'Current'"),
        ),
    )

    record_no: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign Keys
    patient_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("patient_info.patient_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee_info.employee_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Assigned doctor",
    )

    appointment_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    visit_status: Mapped[VisitStatus] = mapped_column(
        Enum(VisitStatus, name="visit_status_enum", values_callable=_enum_values),
        nullable=False,
        default=VisitStatus.SCHEDULED,
        index=True,
    )
    visit_type: Mapped[VisitType] = mapped_column(
        Enum(VisitType, name="visit_type_enum", values_callable=_enum_values),
        nullable=False,
        default=VisitType.SCHEDULED,
    )

    # Schedule (clinic-local date and time-of-day)
    date_scheduled: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_scheduled: Mapped[time] = mapped_column(Time, nullable=False)

    visit_purpose_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    visit_chief_complaint: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    date_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    patient: Mapped["Patient"] = relationship("Patient")
    doctor: Mapped["Employee"] = relationship("Employee")
