# app/schemas/timesheet.py
from datetime import date

from pydantic import BaseModel, ConfigDict, field_validator

from app.utils.datetime_utils import format_time_label, parse_time_label


class TimesheetSlotCreate(BaseModel):
    employee_id: int
    timesheet_date: date
    timesheet_time: str

    @field_validator("timesheet_time")
    @classmethod
    def validate_time_label(cls, v: str) -> str:
        # Normalise "9:00 am" -> "09:00 AM" so the unique key is stable
        return format_time_label(parse_time_label(v))


class TimesheetSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    record_id: int
    employee_id: int
    timesheet_date: date
    timesheet_time: str
    max_appointment: int


class TimesheetListResponse(BaseModel):
    data: list[TimesheetSlotResponse]
    count: int


class BulkTimesheetError(BaseModel):
    index: int
    error: str


class BulkTimesheetResponse(BaseModel):
    message: str
    inserted: int
    skipped: int
    failed: int
    data: list[TimesheetSlotResponse]
    errors: list[BulkTimesheetError] = []


class AvailableTimesResponse(BaseModel):
    employee_id: int
    date: date
    times: list[str]


class WeekSlot(BaseModel):
    date: date
    state: str


class WeekRow(BaseModel):
    time: str
    slots: list[WeekSlot]


class WeekGridResponse(BaseModel):
    employee_id: int
    week_start: date
    week_end: date
    rows: list[WeekRow]
