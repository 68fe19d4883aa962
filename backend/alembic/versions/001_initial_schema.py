"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def upgrade() -> None:
    op.create_table(
        "recurring_availabilities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Enum(*DAY_NAMES, name="day_of_week"), nullable=False),
        sa.Column("start_time", sa.Text(), nullable=False),
        sa.Column("end_time", sa.Text(), nullable=False),
        sa.Column("break_times", sa.JSON(), nullable=False),
        sa.Column("default_duration", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("buffer_time", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("max_bookings", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("effective_from", sa.Date()),
        sa.Column("effective_until", sa.Date()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("generated_until", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "vendor_id", "day_of_week", "effective_from", "effective_until",
            name="recurring_availability_unique",
        ),
    )
    op.create_index(
        "ix_recurring_vendor_day_active",
        "recurring_availabilities",
        ["vendor_id", "day_of_week", "is_active"],
    )
    op.create_index(
        "uq_recurring_one_ongoing",
        "recurring_availabilities",
        ["vendor_id", "day_of_week"],
        unique=True,
        postgresql_where=sa.text("is_active AND effective_until IS NULL"),
        sqlite_where=sa.text("is_active AND effective_until IS NULL"),
    )

    op.create_table(
        "slot_instances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer()),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Text(), nullable=False),
        sa.Column("end_time", sa.Text(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("max_bookings", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("reservation_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("reservation_count >= 0", name="slot_reservation_count_non_negative"),
        sa.CheckConstraint("reservation_count <= max_bookings", name="slot_reservation_count_capacity"),
    )
    op.create_index("ix_slot_vendor_date_start", "slot_instances", ["vendor_id", "slot_date", "start_time"])
    op.create_index("ix_slot_vendor_day", "slot_instances", ["vendor_id", "day_of_week"])

    op.create_table(
        "slot_reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "slot_id",
            sa.Integer(),
            sa.ForeignKey("slot_instances.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("booking_id", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("released_at", sa.DateTime()),
    )
    op.create_index("ix_slot_reservations_slot_id", "slot_reservations", ["slot_id"])
    op.create_index("ix_slot_reservations_booking_id", "slot_reservations", ["booking_id"])

    op.create_table(
        "calendar_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("date_start", sa.Date(), nullable=False),
        sa.Column("date_end", sa.Date(), nullable=False),
        sa.Column(
            "override_kind",
            sa.Enum("day_off", "custom_hours", name="override_kind"),
            nullable=False,
        ),
        sa.Column("start_time", sa.Text()),
        sa.Column("end_time", sa.Text()),
        sa.Column("reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_override_vendor_dates", "calendar_overrides", ["vendor_id", "date_start", "date_end"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer()),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "confirmed", "in_progress", "completed", "cancelled",
                name="booking_status",
            ),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slot_instances.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("cancelled_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_vendor_status", "bookings", ["vendor_id", "status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("calendar_overrides")
    op.drop_table("slot_reservations")
    op.drop_table("slot_instances")
    op.drop_table("recurring_availabilities")
