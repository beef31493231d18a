from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from uredno.infra.db import Base


class AvailabilitySlot(Base):
    """One schedulable cell: a team in a two-hour window on a given day.

    ``booking_id`` is set only while a booking holds the cell. A cell with
    ``is_available = False`` and no ``booking_id`` is blocked for operational
    reasons (holiday, team off sick).
    """

    __tablename__ = "availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(11), nullable=False)
    team_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("date", "time_slot", "team_number", name="uq_availability_cell"),
        Index("ix_availability_date_open", "date", "is_available"),
        Index("ix_availability_booking_id", "booking_id"),
    )
