# app/models/employee.py
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class Employee(Base):
    """
    Clinic staff member. Doctors are employees whose timesheets
    declare bookable slots and who are assigned visit records.
    """

    __tablename__ = "employee_info"

    employee_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Department label shown on queue screens (e.g. "Pediatrics")
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def doctor_name(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}".strip()
