from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from uredno.domain.pricing.models import Extra

BookingStatus = Literal["pending", "confirmed", "in_progress", "completed", "cancelled"]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CustomerIn(BaseModel):
    """Contact fields as submitted. Presence is checked by the orchestrator so
    missing fields are reported one by one, in a fixed order."""

    model_config = ConfigDict(extra="ignore")

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=16)

    strip_blank = field_validator("*", mode="before")(_blank_to_none)


class BookingCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    customer: Optional[CustomerIn] = None
    service_id: Optional[str] = None
    booking_date: Optional[date] = None
    time_slot: Optional[str] = None
    service_type: Optional[str] = Field(default=None, max_length=64)
    team_number: Optional[int] = Field(default=None, ge=1)
    property_size: Optional[Decimal] = None
    extras: list[Extra] = Field(default_factory=list)
    total_price: Optional[Decimal] = None
    special_requests: Optional[str] = Field(default=None, max_length=2000)

    strip_blank = field_validator(
        "customer",
        "service_id",
        "booking_date",
        "time_slot",
        "service_type",
        "total_price",
        mode="before",
    )(_blank_to_none)


class CustomerOut(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None


class BookingResponse(BaseModel):
    id: str
    booking_number: str
    status: str
    customer: CustomerOut
    service_id: str
    service_type: str
    booking_date: date
    time_slot: str
    team_number: int
    property_size: Decimal | None = None
    extras: list[dict] = Field(default_factory=list)
    base_price: Decimal | None = None
    extras_cost: Decimal
    total_price: Decimal
    special_requests: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    confirmation_url: str | None = None

    @field_serializer("property_size", "base_price", "extras_cost", "total_price")
    def _serialize_decimal(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None

    @classmethod
    def from_booking(cls, booking, public_base_url: str | None = None) -> "BookingResponse":  # noqa: ANN001
        confirmation_url = None
        if public_base_url:
            confirmation_url = (
                f"{public_base_url.rstrip('/')}/booking/confirmation"
                f"?booking_number={booking.booking_number}"
            )
        return cls(
            id=booking.id,
            booking_number=booking.booking_number,
            status=booking.status,
            customer=CustomerOut(
                first_name=booking.customer_first_name,
                last_name=booking.customer_last_name,
                email=booking.customer_email,
                phone=booking.customer_phone,
                address=booking.customer_address,
                city=booking.customer_city,
                postal_code=booking.customer_postal_code,
            ),
            service_id=booking.service_id,
            service_type=booking.service_type,
            booking_date=booking.booking_date,
            time_slot=booking.time_slot,
            team_number=booking.team_number,
            property_size=booking.property_size,
            extras=list(booking.extras or []),
            base_price=booking.base_price,
            extras_cost=booking.extras_cost,
            total_price=booking.total_price,
            special_requests=booking.special_requests,
            created_at=booking.created_at,
            confirmed_at=booking.confirmed_at,
            completed_at=booking.completed_at,
            cancelled_at=booking.cancelled_at,
            confirmation_url=confirmation_url,
        )


class BookingCreatedResponse(BaseModel):
    success: bool = True
    booking: BookingResponse


class BookingLookupResponse(BaseModel):
    booking: BookingResponse


class BookingStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: BookingStatus
