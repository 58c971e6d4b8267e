"""create_frontdesk_tables

Revision ID: create_frontdesk_tables
Revises:
Create Date: 2024-06-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "create_frontdesk_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


VISIT_STATUSES = ("Scheduled", "Queued", "Current", "Completed", "Cancelled")
VISIT_TYPES = ("Scheduled/Follow-Up", "Walk-in", "Emergency")


def upgrade() -> None:
    op.create_table(
        "patient_info",
        sa.Column("patient_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("middle_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("patient_id"),
    )

    op.create_table(
        "employee_info",
        sa.Column("employee_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("position", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("employee_id"),
    )

    op.create_table(
        "employee_timesheet",
        sa.Column("record_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("timesheet_date", sa.Date(), nullable=False),
        sa.Column("timesheet_time", sa.String(length=8), nullable=False),
        sa.Column("max_appointment", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["employee_id"], ["employee_info.employee_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("record_id"),
        sa.UniqueConstraint(
            "employee_id",
            "timesheet_date",
            "timesheet_time",
            name="uq_employee_timesheet_slot",
        ),
    )
    op.create_index(op.f("ix_employee_timesheet_employee_id"), "employee_timesheet", ["employee_id"])
    op.create_index(op.f("ix_employee_timesheet_timesheet_date"), "employee_timesheet", ["timesheet_date"])

    op.create_table(
        "patient_visit_record",
        sa.Column("record_no", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("appointment_code", sa.String(length=32), nullable=False),
        sa.Column(
            "visit_status",
            sa.Enum(*VISIT_STATUSES, name="visit_status_enum"),
            nullable=False,
        ),
        sa.Column(
            "visit_type",
            sa.Enum(*VISIT_TYPES, name="visit_type_enum"),
            nullable=False,
        ),
        sa.Column("date_scheduled", sa.Date(), nullable=False),
        sa.Column("time_scheduled", sa.Time(), nullable=False),
        sa.Column("visit_purpose_title", sa.String(length=255), nullable=True),
        sa.Column("visit_chief_complaint", sa.Text(), nullable=True),
        sa.Column(
            "date_created",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["patient_id"], ["patient_info.patient_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employee_info.employee_id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("record_no"),
    )
    op.create_index(
        op.f("ix_patient_visit_record_appointment_code"),
        "patient_visit_record",
        ["appointment_code"],
        unique=True,
    )
    op.create_index(op.f("ix_patient_visit_record_patient_id"), "patient_visit_record", ["patient_id"])
    op.create_index(op.f("ix_patient_visit_record_employee_id"), "patient_visit_record", ["employee_id"])
    op.create_index(op.f("ix_patient_visit_record_visit_status"), "patient_visit_record", ["visit_status"])
    op.create_index(op.f("ix_patient_visit_record_date_scheduled"), "patient_visit_record", ["date_scheduled"])
    # At most one Current visit per doctor
    op.create_index(
        "uq_visit_one_current_per_doctor",
        "patient_visit_record",
        ["employee_id"],
        unique=True,
        postgresql_where=sa.text("visit_status = 'Current'"),
        sqlite_where=sa.text("visit_status = 'Current'"),
    )


def downgrade() -> None:
    op.drop_table("patient_visit_record")
    op.drop_table("employee_timesheet")
    op.drop_table("employee_info")
    op.drop_table("patient_info")
    sa.Enum(name="visit_status_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="visit_type_enum").drop(op.get_bind(), checkfirst=True)
