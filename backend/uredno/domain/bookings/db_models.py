from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from uredno.infra.db import Base

MONEY = Numeric(10, 2)


class Booking(Base):
    __tablename__ = "bookings"

    # Generated before the slot claim so the claim can carry it.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    customer_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_address: Mapped[str | None] = mapped_column(String(255))
    customer_city: Mapped[str | None] = mapped_column(String(100))
    customer_postal_code: Mapped[str | None] = mapped_column(String(16))

    service_id: Mapped[str] = mapped_column(String(36), nullable=False)
    service_type: Mapped[str] = mapped_column(String(64), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(11), nullable=False)
    team_number: Mapped[int] = mapped_column(Integer, nullable=False)

    property_size: Mapped[Decimal | None] = mapped_column(Numeric(8, 2))
    extras: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)
    base_price: Mapped[Decimal | None] = mapped_column(MONEY)
    extras_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    special_requests: Mapped[str | None] = mapped_column(Text)

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
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_bookings_date_slot", "booking_date", "time_slot"),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_customer_email", "customer_email"),
    )
