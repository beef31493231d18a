from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability import schemas as availability_schemas
from uredno.domain.availability import service as availability_service
from uredno.domain.availability.slots import MAX_HORIZON_DAYS, MIN_HORIZON_DAYS
from uredno.domain.errors import ValidationError
from uredno.infra.db import get_db_session

router = APIRouter()

DAYS_ERROR = f"Days must be between {MIN_HORIZON_DAYS} and {MAX_HORIZON_DAYS}"


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(
            detail="Invalid date format, expected YYYY-MM-DD",
            errors=[{"field": "date"}],
        ) from exc


def _parse_days(raw: str) -> int:
    try:
        days = int(raw)
    except ValueError as exc:
        raise ValidationError(detail=DAYS_ERROR, errors=[{"field": "days"}]) from exc
    if days < MIN_HORIZON_DAYS or days > MAX_HORIZON_DAYS:
        raise ValidationError(detail=DAYS_ERROR, errors=[{"field": "days"}])
    return days


@router.get("/api/availability")
async def get_availability(
    date_param: str | None = Query(default=None, alias="date"),
    time_slot: str | None = Query(default=None),
    days: str | None = Query(default=None),
    next_param: str | None = Query(default=None, alias="next"),
    service_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    if next_param == "true":
        next_slot = await availability_service.next_open_slot(session, service_id or None)
        return {"nextSlot": next_slot.model_dump(mode="json") if next_slot else None}

    if date_param:
        day = _parse_date(date_param)
        if time_slot:
            teams = await availability_service.is_slot_open(session, day, time_slot)
            return {"availability": [team.model_dump(mode="json") for team in teams]}
        slots = await availability_service.list_open_slots(session, day)
        return {"slots": [slot.model_dump(mode="json") for slot in slots]}

    if days:
        by_day = await availability_service.availability_for_days(session, _parse_days(days))
        return {
            "availability": {
                day: [slot.model_dump(mode="json") for slot in slots] for day, slots in by_day.items()
            }
        }

    raise ValidationError(detail="Please provide date or days parameter")


@router.get("/api/availability/dates")
async def get_open_dates(
    days: str = Query(default=str(MAX_HORIZON_DAYS)),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    open_dates = await availability_service.list_open_dates(session, _parse_days(days))
    return {"dates": [day.isoformat() for day in open_dates]}


@router.get("/api/availability/dates/{day}", response_model=availability_schemas.DateStatus)
async def get_date_status(
    day: str,
    session: AsyncSession = Depends(get_db_session),
) -> availability_schemas.DateStatus:
    parsed = _parse_date(day)
    fully_booked = await availability_service.is_date_fully_booked(session, parsed)
    return availability_schemas.DateStatus(date=parsed, fully_booked=fully_booked)
