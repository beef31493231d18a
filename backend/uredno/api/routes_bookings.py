import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.bookings import schemas as booking_schemas
from uredno.domain.bookings import service as booking_service
from uredno.domain.errors import NotFoundError, ValidationError
from uredno.infra.db import get_db_session

router = APIRouter()
logger = logging.getLogger(__name__)


def _public_base_url(request: Request) -> str | None:
    return request.app.state.app_settings.public_base_url


@router.post(
    "/api/bookings",
    response_model=booking_schemas.BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: booking_schemas.BookingCreate,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> booking_schemas.BookingCreatedResponse:
    booking = await booking_service.create_booking(session, payload)
    logger.info(
        "booking_created",
        extra={"extra": {"booking_id": booking.id, "booking_number": booking.booking_number}},
    )
    return booking_schemas.BookingCreatedResponse(
        booking=booking_schemas.BookingResponse.from_booking(booking, _public_base_url(request)),
    )


@router.get("/api/bookings", response_model=booking_schemas.BookingLookupResponse)
async def get_booking(
    request: Request,
    booking_number: str | None = Query(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> booking_schemas.BookingLookupResponse:
    if not booking_number or not booking_number.strip():
        raise ValidationError(detail="Booking number is required")
    booking = await booking_service.get_booking_by_number(session, booking_number.strip())
    if booking is None:
        raise NotFoundError(detail="Booking not found")
    return booking_schemas.BookingLookupResponse(
        booking=booking_schemas.BookingResponse.from_booking(booking, _public_base_url(request)),
    )
