# app/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Front-desk tables (patients, employees, timesheets, visit records)
    all inherit from this class.
    """

    pass
