"""Generation of the availability grid.

Rows are inserted open for every service day, time slot and team in the
requested range. Cells that already exist are left untouched so seeding can
be re-run without freeing held or blocked cells.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability.db_models import AvailabilitySlot
from uredno.domain.availability.slots import TIME_SLOTS, is_service_day
from uredno.infra.store import store_call

logger = logging.getLogger(__name__)


def iter_cells(start: date, days: int, team_numbers: list[int]):
    for offset in range(days):
        day = start + timedelta(days=offset)
        if not is_service_day(day):
            continue
        for time_slot in TIME_SLOTS:
            for team_number in team_numbers:
                yield day, time_slot, team_number


async def seed_grid(
    session: AsyncSession,
    *,
    start: date,
    days: int,
    team_numbers: list[int],
    timeout: float | None = None,
) -> int:
    end = start + timedelta(days=days - 1)
    existing_stmt = select(
        AvailabilitySlot.date, AvailabilitySlot.time_slot, AvailabilitySlot.team_number
    ).where(AvailabilitySlot.date >= start, AvailabilitySlot.date <= end)

    async def _seed() -> int:
        try:
            existing = {tuple(row) for row in await session.execute(existing_stmt)}
            created = 0
            for cell in iter_cells(start, days, team_numbers):
                if cell in existing:
                    continue
                day, time_slot, team_number = cell
                session.add(
                    AvailabilitySlot(
                        date=day,
                        time_slot=time_slot,
                        team_number=team_number,
                        is_available=True,
                    )
                )
                created += 1
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return created

    created = await store_call(
        "seed_grid",
        _seed,
        timeout=timeout,
        start=start.isoformat(),
        days=days,
    )
    logger.info(
        "availability_seeded",
        extra={"extra": {"start": start.isoformat(), "end": end.isoformat(), "created": created}},
    )
    return created
