"""contact inquiries

Revision ID: 0002_inquiries
Revises: 0001_initial
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0002_inquiries"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "inquiries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("inquiry_type", sa.String(length=16), nullable=False, server_default="general"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="new"),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="website"),
        sa.Column("service_interest", sa.String(length=120)),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True)),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_inquiries_email_created", "inquiries", ["email", "created_at"])
    op.create_index("ix_inquiries_status", "inquiries", ["status"])


def downgrade() -> None:
    op.drop_index("ix_inquiries_status", table_name="inquiries")
    op.drop_index("ix_inquiries_email_created", table_name="inquiries")
    op.drop_table("inquiries")
