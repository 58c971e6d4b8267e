# app/models/timesheet.py
from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class TimesheetSlot(Base):
    """
    One doctor's availability atom: one employee, one date, one time label.

    Rows are created only by explicit staff selection (bulk save from the
    weekly grid). `max_appointment` is the remaining booking capacity; it is
    decremented when a visit is booked into the slot.
    """

    __tablename__ = "employee_timesheet"
    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "timesheet_date",
            "timesheet_time",
            name="uq_employee_timesheet_slot",
        ),
    )

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee_info.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timesheet_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    timesheet_time: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        doc="Time label from the fixed discrete set, e.g. '09:00 AM'",
    )
    max_appointment: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
