# app/schemas/visit.py
from datetime import date, time

from pydantic import BaseModel, ConfigDict, field_validator

from app.models.visit import VisitStatus, VisitType
from app.utils.datetime_utils import format_time_label, parse_time_label


class VisitCreate(BaseModel):
    patient_id: int
    employee_id: int
    date_scheduled: date
    time_scheduled: str  # time label from the doctor's timesheet, e.g. "09:00 AM"
    visit_type: VisitType = VisitType.SCHEDULED
    visit_purpose_title: str | None = None
    visit_chief_complaint: str | None = None

    @field_validator("time_scheduled")
    @classmethod
    def validate_time_label(cls, v: str) -> str:
        return format_time_label(parse_time_label(v))


class VisitEntry(BaseModel):
    """One visit record as shown on queue screens."""

    model_config = ConfigDict(from_attributes=True)

    record_no: int
    appointment_code: str
    patient_id: int
    employee_id: int
    patient_name: str
    doctor_name: str
    doctor_department: str | None = None
    visit_status: VisitStatus
    visit_type: VisitType
    date_scheduled: date
    time_scheduled: time
    visit_purpose_title: str | None = None
    visit_chief_complaint: str | None = None

    @property
    def time_label(self) -> str:
        return format_time_label(self.time_scheduled)


class DoctorInfo(BaseModel):
    employee_id: int
    doctor_name: str
    department: str | None = None


class QueueResponse(BaseModel):
    data: list[VisitEntry]
    count: int
    now_serving: list[VisitEntry] = []
    waiting: list[VisitEntry] = []
    doctor_info: DoctorInfo | None = None
