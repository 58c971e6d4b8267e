# app/schemas/appointment.py
from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field

from app.models.visit import VisitStatus
from app.utils.datetime_utils import format_time_label


class AppointmentDetails(BaseModel):
    """
    Read view of one scheduled encounter: the visit record joined with
    patient and doctor names, enough to render a scan result.
    """

    model_config = ConfigDict(from_attributes=True)

    record_no: int
    appointment_code: str
    patient_id: int
    patient_name: str
    doctor_id: int
    doctor_name: str
    date_scheduled: date
    time_scheduled: time
    visit_status: VisitStatus

    @property
    def time_label(self) -> str:
        return format_time_label(self.time_scheduled)


class ScanRequest(BaseModel):
    appointment_code: str = Field(..., min_length=1, max_length=64)
    # Admit straight into consultation instead of the waiting queue
    begin_consultation: bool = False
