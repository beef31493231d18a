"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "services",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False, unique=True),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2)),
        sa.Column("price_per_sqm", sa.Numeric(10, 2)),
        sa.Column("min_price", sa.Numeric(10, 2)),
        sa.Column("duration_hours", sa.Numeric(4, 1), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("popular", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            # ORM-managed updated_at (no database trigger).
            nullable=False,
        ),
    )
    op.create_index("ix_services_active_order", "services", ["active", "display_order"])
    op.create_index("ix_services_category", "services", ["category"])

    op.create_table(
        "availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(length=11), nullable=False),
        sa.Column("team_number", sa.Integer(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("booking_id", sa.String(length=36)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            # ORM-managed updated_at (no database trigger).
            nullable=False,
        ),
        sa.UniqueConstraint("date", "time_slot", "team_number", name="uq_availability_cell"),
    )
    op.create_index("ix_availability_date_open", "availability", ["date", "is_available"])
    op.create_index("ix_availability_booking_id", "availability", ["booking_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_number", sa.String(length=16), nullable=False, unique=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("customer_first_name", sa.String(length=100), nullable=False),
        sa.Column("customer_last_name", sa.String(length=100), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=False),
        sa.Column("customer_phone", sa.String(length=32), nullable=False),
        sa.Column("customer_address", sa.String(length=255)),
        sa.Column("customer_city", sa.String(length=100)),
        sa.Column("customer_postal_code", sa.String(length=16)),
        sa.Column("service_id", sa.String(length=36), nullable=False),
        sa.Column("service_type", sa.String(length=64), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(length=11), nullable=False),
        sa.Column("team_number", sa.Integer(), nullable=False),
        sa.Column("property_size", sa.Numeric(8, 2)),
        sa.Column("extras", sa.JSON(), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2)),
        sa.Column("extras_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("special_requests", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            # ORM-managed updated_at (no database trigger).
            nullable=False,
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_bookings_date_slot", "bookings", ["booking_date", "time_slot"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_customer_email", "bookings", ["customer_email"])


def downgrade() -> None:
    op.drop_index("ix_bookings_customer_email", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_date_slot", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_availability_booking_id", table_name="availability")
    op.drop_index("ix_availability_date_open", table_name="availability")
    op.drop_table("availability")
    op.drop_index("ix_services_category", table_name="services")
    op.drop_index("ix_services_active_order", table_name="services")
    op.drop_table("services")
