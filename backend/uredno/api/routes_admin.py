import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.api.service_role_auth import require_service_role
from uredno.domain.availability import grid, reservation
from uredno.domain.availability import schemas as availability_schemas
from uredno.domain.availability import service as availability_service
from uredno.domain.bookings import schemas as booking_schemas
from uredno.domain.bookings import service as booking_service
from uredno.domain.inquiries import schemas as inquiry_schemas
from uredno.domain.inquiries import service as inquiry_service
from uredno.infra.db import get_db_session

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_service_role)])
logger = logging.getLogger(__name__)


@router.post("/availability/seed", response_model=availability_schemas.SeedResult)
async def seed_availability(
    payload: availability_schemas.SeedRequest,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> availability_schemas.SeedResult:
    app_settings = request.app.state.app_settings
    start = payload.start_date or availability_service.local_now().date()
    created = await grid.seed_grid(
        session,
        start=start,
        days=payload.days,
        team_numbers=app_settings.team_numbers,
    )
    return availability_schemas.SeedResult(
        start_date=start,
        end_date=start + timedelta(days=payload.days - 1),
        created=created,
    )


@router.post("/availability/block", response_model=availability_schemas.CellChangeResult)
async def block_cell(
    cell: availability_schemas.SlotCell,
    session: AsyncSession = Depends(get_db_session),
) -> availability_schemas.CellChangeResult:
    availability_service.validate_time_slot(cell.time_slot)
    changed = await reservation.block_slot(
        session, day=cell.date, time_slot=cell.time_slot, team_number=cell.team_number
    )
    return availability_schemas.CellChangeResult(changed=changed, cell=cell)


@router.post("/availability/unblock", response_model=availability_schemas.CellChangeResult)
async def unblock_cell(
    cell: availability_schemas.SlotCell,
    session: AsyncSession = Depends(get_db_session),
) -> availability_schemas.CellChangeResult:
    availability_service.validate_time_slot(cell.time_slot)
    changed = await reservation.unblock_slot(
        session, day=cell.date, time_slot=cell.time_slot, team_number=cell.team_number
    )
    return availability_schemas.CellChangeResult(changed=changed, cell=cell)


@router.post("/bookings/{booking_number}/cancel", response_model=booking_schemas.BookingLookupResponse)
async def cancel_booking(
    booking_number: str,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> booking_schemas.BookingLookupResponse:
    booking = await booking_service.cancel_booking(session, booking_number)
    return booking_schemas.BookingLookupResponse(
        booking=booking_schemas.BookingResponse.from_booking(
            booking, request.app.state.app_settings.public_base_url
        )
    )


@router.patch("/bookings/{booking_number}/status", response_model=booking_schemas.BookingLookupResponse)
async def update_booking_status(
    booking_number: str,
    payload: booking_schemas.BookingStatusUpdate,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> booking_schemas.BookingLookupResponse:
    booking = await booking_service.update_booking_status(session, booking_number, payload.status)
    return booking_schemas.BookingLookupResponse(
        booking=booking_schemas.BookingResponse.from_booking(
            booking, request.app.state.app_settings.public_base_url
        )
    )


@router.get("/inquiries", response_model=inquiry_schemas.InquiryListResponse)
async def list_inquiries(
    email: str | None = Query(default=None),
    status: inquiry_schemas.InquiryStatus | None = Query(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> inquiry_schemas.InquiryListResponse:
    inquiries = await inquiry_service.list_inquiries(session, email=email or None, status=status)
    return inquiry_schemas.InquiryListResponse(
        inquiries=[inquiry_schemas.InquiryResponse.model_validate(inquiry) for inquiry in inquiries]
    )


@router.get("/inquiries/stats", response_model=inquiry_schemas.InquiryStats)
async def inquiry_stats(session: AsyncSession = Depends(get_db_session)) -> inquiry_schemas.InquiryStats:
    return await inquiry_service.inquiry_stats(session)


@router.patch("/inquiries/{inquiry_id}/status", response_model=inquiry_schemas.InquiryResponse)
async def update_inquiry_status(
    inquiry_id: str,
    payload: inquiry_schemas.InquiryStatusUpdate,
    session: AsyncSession = Depends(get_db_session),
) -> inquiry_schemas.InquiryResponse:
    inquiry = await inquiry_service.update_inquiry_status(session, inquiry_id, payload.status)
    return inquiry_schemas.InquiryResponse.model_validate(inquiry)
