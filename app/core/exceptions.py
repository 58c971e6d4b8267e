# app/core/exceptions.py
"""
Domain errors raised by the front-desk services.

Services raise these; API endpoints translate them into HTTPException
responses, and station views surface them to the operator.

Timing rejections (too early, too late, expired, future) and unknown
appointment codes are NOT exceptions: they are classified outcomes returned
by the admission classifier.
"""


class FrontDeskError(Exception):
    """Base class for all front-desk errors."""


class NoDoctorSelected(FrontDeskError):
    """A timesheet was requested without an employee bound to the session."""

    def __init__(self, message: str = "No doctor selected.") -> None:
        super().__init__(message)


class InvalidSlot(FrontDeskError):
    """A timesheet slot is outside the viewed week or uses an unknown time label."""


class VisitNotFound(FrontDeskError):
    """No visit record exists for the given record number."""

    def __init__(self, record_no: int) -> None:
        self.record_no = record_no
        super().__init__(f"Visit record {record_no} not found.")


class TransitionConflict(FrontDeskError):
    """
    The requested status transition is not legal for the record's current state,
    or another operator changed the record first.
    """

    def __init__(self, message: str, *, record_no: int | None = None, blocking_record_no: int | None = None) -> None:
        self.record_no = record_no
        self.blocking_record_no = blocking_record_no
        super().__init__(message)


class TransportFailure(FrontDeskError):
    """A collaborator call failed at the network or storage layer."""
