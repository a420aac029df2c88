"""Initial schema: working_hours, blocked_intervals, appointments, appointment_reminders.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPOINTMENT_STATUSES = ("scheduled", "confirmed", "completed", "cancelled", "no_show")
REMINDER_TIERS = ("24h", "1h", "30min")
REMINDER_OUTCOMES = ("sent", "failed")


def upgrade() -> None:
    op.create_table(
        "working_hours",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_working_hours_weekday"),
        sa.CheckConstraint("start_time < end_time", name="ck_working_hours_range"),
    )
    op.create_index(op.f("ix_working_hours_professional_id"), "working_hours", ["professional_id"], unique=False)

    op.create_table(
        "blocked_intervals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_time > start_time", name="ck_blocked_intervals_range"),
    )
    op.create_index(op.f("ix_blocked_intervals_professional_id"), "blocked_intervals", ["professional_id"], unique=False)
    op.create_index(op.f("ix_blocked_intervals_start_time"), "blocked_intervals", ["start_time"], unique=False)

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*APPOINTMENT_STATUSES, name="appointment_status", native_enum=False, length=20),
            nullable=False,
        ),
        sa.Column("client_name", sa.String(), nullable=True),
        sa.Column("client_contact", sa.String(), nullable=True),
        sa.Column("service_name", sa.String(), nullable=True),
        sa.Column("professional_name", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_time > start_time", name="ck_appointments_range"),
    )
    op.create_index(op.f("ix_appointments_professional_id"), "appointments", ["professional_id"], unique=False)
    op.create_index(op.f("ix_appointments_start_time"), "appointments", ["start_time"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)

    if op.get_bind().dialect.name == "postgresql":
        # No two calendar-occupying appointments of one professional may overlap
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE appointments
            ADD CONSTRAINT ex_appointments_no_overlap
            EXCLUDE USING gist (
                professional_id WITH =,
                tsrange(start_time, end_time, '[)') WITH &&
            )
            WHERE (status IN ('scheduled', 'confirmed', 'completed'))
            """
        )

    op.create_table(
        "appointment_reminders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("tier", sa.Enum(*REMINDER_TIERS, name="reminder_tier", native_enum=False, length=10), nullable=False),
        sa.Column(
            "outcome",
            sa.Enum(*REMINDER_OUTCOMES, name="reminder_outcome", native_enum=False, length=10),
            nullable=False,
        ),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_id", "tier", name="uq_appointment_reminders_appointment_tier"),
    )
    op.create_index(
        op.f("ix_appointment_reminders_appointment_id"), "appointment_reminders", ["appointment_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_appointment_reminders_appointment_id"), table_name="appointment_reminders")
    op.drop_table("appointment_reminders")
    op.drop_index(op.f("ix_appointments_status"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_start_time"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_professional_id"), table_name="appointments")
    op.drop_table("appointments")
    op.drop_index(op.f("ix_blocked_intervals_start_time"), table_name="blocked_intervals")
    op.drop_index(op.f("ix_blocked_intervals_professional_id"), table_name="blocked_intervals")
    op.drop_table("blocked_intervals")
    op.drop_index(op.f("ix_working_hours_professional_id"), table_name="working_hours")
    op.drop_table("working_hours")
