from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability import schemas
from uredno.domain.availability.db_models import AvailabilitySlot
from uredno.domain.availability.slots import (
    MAX_HORIZON_DAYS,
    MIN_HORIZON_DAYS,
    TIME_SLOTS,
    has_started,
    is_known_time_slot,
    is_service_day,
)
from uredno.domain.catalog import service as catalog_service
from uredno.domain.errors import ValidationError
from uredno.infra.store import store_call
from uredno.settings import settings


def local_now() -> datetime:
    return datetime.now(settings.local_tz)


def validate_horizon(days: int) -> int:
    if days < MIN_HORIZON_DAYS or days > MAX_HORIZON_DAYS:
        raise ValidationError(detail=f"Days must be between {MIN_HORIZON_DAYS} and {MAX_HORIZON_DAYS}")
    return days


def validate_time_slot(time_slot: str) -> str:
    if not is_known_time_slot(time_slot):
        raise ValidationError(
            detail=f"Invalid time slot: {time_slot}",
            errors=[{"field": "time_slot", "allowed": list(TIME_SLOTS)}],
        )
    return time_slot


async def list_open_slots(session: AsyncSession, day: date) -> list[schemas.OpenSlot]:
    """Every fixed slot of ``day`` with the teams that can still be claimed.

    Slots with no open team are included with a zero count so the caller always
    gets the full day.
    """
    stmt = (
        select(AvailabilitySlot.time_slot, AvailabilitySlot.team_number)
        .where(AvailabilitySlot.date == day, AvailabilitySlot.is_available.is_(True))
        .order_by(AvailabilitySlot.time_slot, AvailabilitySlot.team_number)
    )

    async def _run() -> list[tuple[str, int]]:
        result = await session.execute(stmt)
        return [(row.time_slot, row.team_number) for row in result]

    rows = await store_call("list_open_slots", _run, date=day.isoformat())
    open_teams: dict[str, list[int]] = {slot: [] for slot in TIME_SLOTS}
    for time_slot, team_number in rows:
        if time_slot in open_teams:
            open_teams[time_slot].append(team_number)
    return [
        schemas.OpenSlot(
            date=day,
            time_slot=time_slot,
            available_team_count=len(teams),
            available_team_numbers=teams,
        )
        for time_slot, teams in open_teams.items()
    ]


async def is_slot_open(session: AsyncSession, day: date, time_slot: str) -> list[schemas.TeamAvailability]:
    validate_time_slot(time_slot)
    stmt = (
        select(AvailabilitySlot.team_number, AvailabilitySlot.is_available)
        .where(AvailabilitySlot.date == day, AvailabilitySlot.time_slot == time_slot)
        .order_by(AvailabilitySlot.team_number)
    )

    async def _run() -> list[schemas.TeamAvailability]:
        result = await session.execute(stmt)
        return [
            schemas.TeamAvailability(team_number=row.team_number, is_available=row.is_available)
            for row in result
        ]

    return await store_call("is_slot_open", _run, date=day.isoformat(), time_slot=time_slot)


async def next_open_slot(
    session: AsyncSession,
    service_id: str | None = None,
    *,
    now: datetime | None = None,
) -> schemas.NextSlot | None:
    """Earliest claimable cell from now until the end of the scheduling horizon."""
    if service_id is not None:
        service = await catalog_service.get_active_service(session, service_id)
        if service is None:
            raise ValidationError(detail=f"Unknown service: {service_id}")

    current = now or local_now()
    today = current.date()
    last_day = today + timedelta(days=settings.availability_horizon_days)
    started_today = [slot for slot in TIME_SLOTS if has_started(today, slot, current)]

    stmt = (
        select(AvailabilitySlot.date, AvailabilitySlot.time_slot, AvailabilitySlot.team_number)
        .where(
            AvailabilitySlot.is_available.is_(True),
            AvailabilitySlot.date <= last_day,
            or_(
                AvailabilitySlot.date > today,
                and_(
                    AvailabilitySlot.date == today,
                    AvailabilitySlot.time_slot.notin_(started_today),
                ),
            ),
        )
        .order_by(AvailabilitySlot.date, AvailabilitySlot.time_slot, AvailabilitySlot.team_number)
        .limit(1)
    )

    async def _run() -> schemas.NextSlot | None:
        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return schemas.NextSlot(date=row.date, time_slot=row.time_slot, team_number=row.team_number)

    return await store_call("next_open_slot", _run, service_id=service_id)


async def list_open_dates(
    session: AsyncSession,
    horizon_days: int,
    *,
    now: datetime | None = None,
) -> list[date]:
    validate_horizon(horizon_days)
    today = (now or local_now()).date()
    stmt = (
        select(AvailabilitySlot.date)
        .where(
            AvailabilitySlot.is_available.is_(True),
            AvailabilitySlot.date >= today,
            AvailabilitySlot.date <= today + timedelta(days=horizon_days),
        )
        .distinct()
        .order_by(AvailabilitySlot.date)
    )

    async def _run() -> list[date]:
        result = await session.execute(stmt)
        return list(result.scalars().all())

    return await store_call("list_open_dates", _run, horizon_days=horizon_days)


async def is_date_fully_booked(session: AsyncSession, day: date) -> bool:
    stmt = select(func.count(AvailabilitySlot.id)).where(
        AvailabilitySlot.date == day,
        AvailabilitySlot.is_available.is_(True),
    )

    async def _run() -> bool:
        open_count = (await session.execute(stmt)).scalar_one()
        return int(open_count) == 0

    return await store_call("is_date_fully_booked", _run, date=day.isoformat())


async def availability_for_days(
    session: AsyncSession,
    days: int,
    *,
    now: datetime | None = None,
) -> dict[str, list[schemas.OpenSlot]]:
    """Open slots for each of the next ``days`` days, starting tomorrow, Sundays skipped."""
    validate_horizon(days)
    today = (now or local_now()).date()
    availability: dict[str, list[schemas.OpenSlot]] = {}
    for offset in range(1, days + 1):
        day = today + timedelta(days=offset)
        if not is_service_day(day):
            continue
        availability[day.isoformat()] = await list_open_slots(session, day)
    return availability
