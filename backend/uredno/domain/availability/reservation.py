"""Atomic claim and release of availability cells.

A claim is a single conditional ``UPDATE ... WHERE is_available = true
RETURNING id`` committed on its own, so the database decides which of two
concurrent claims wins. Nothing here reads a cell before writing it.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability.db_models import AvailabilitySlot
from uredno.infra.metrics import metrics
from uredno.infra.store import store_call

logger = logging.getLogger(__name__)


async def claim_slot(
    session: AsyncSession,
    *,
    day: date,
    time_slot: str,
    team_number: int,
    booking_id: str,
) -> bool:
    stmt = (
        update(AvailabilitySlot)
        .where(
            AvailabilitySlot.date == day,
            AvailabilitySlot.time_slot == time_slot,
            AvailabilitySlot.team_number == team_number,
            AvailabilitySlot.is_available.is_(True),
            AvailabilitySlot.booking_id.is_(None),
        )
        .values(is_available=False, booking_id=booking_id)
        .returning(AvailabilitySlot.id)
        .execution_options(synchronize_session=False)
    )

    async def _claim() -> bool:
        try:
            result = await session.execute(stmt)
            claimed_id = result.scalar_one_or_none()
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return claimed_id is not None

    claimed = await store_call(
        "claim_slot",
        _claim,
        booking_id=booking_id,
        date=day.isoformat(),
        time_slot=time_slot,
        team_number=team_number,
    )
    metrics.record_slot_claim("claimed" if claimed else "conflict")
    logger.info(
        "slot_claimed" if claimed else "slot_claim_lost",
        extra={
            "extra": {
                "booking_id": booking_id,
                "date": day.isoformat(),
                "time_slot": time_slot,
                "team_number": team_number,
            }
        },
    )
    return claimed


async def release_held(session: AsyncSession, booking_id: str) -> bool:
    """Free every cell held by ``booking_id`` inside the caller's transaction.

    Nothing is committed here; callers that must change other rows atomically
    with the release commit once themselves.
    """
    stmt = (
        update(AvailabilitySlot)
        .where(AvailabilitySlot.booking_id == booking_id)
        .values(is_available=True, booking_id=None)
        .returning(AvailabilitySlot.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return bool(result.scalars().all())


def record_release(booking_id: str, released: bool) -> None:
    metrics.record_slot_release("released" if released else "noop")
    logger.info(
        "slot_released" if released else "slot_release_noop",
        extra={"extra": {"booking_id": booking_id}},
    )


async def release_slot(session: AsyncSession, booking_id: str) -> bool:
    """Free every cell held by ``booking_id``. Safe to call repeatedly."""

    async def _release() -> bool:
        try:
            released = await release_held(session, booking_id)
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return released

    released = await store_call("release_slot", _release, booking_id=booking_id)
    record_release(booking_id, released)
    return released


async def _flip_unheld(
    session: AsyncSession,
    operation: str,
    *,
    day: date,
    time_slot: str,
    team_number: int,
    from_available: bool,
) -> bool:
    stmt = (
        update(AvailabilitySlot)
        .where(
            AvailabilitySlot.date == day,
            AvailabilitySlot.time_slot == time_slot,
            AvailabilitySlot.team_number == team_number,
            AvailabilitySlot.is_available.is_(from_available),
            AvailabilitySlot.booking_id.is_(None),
        )
        .values(is_available=not from_available)
        .returning(AvailabilitySlot.id)
        .execution_options(synchronize_session=False)
    )

    async def _flip() -> bool:
        try:
            result = await session.execute(stmt)
            changed_id = result.scalar_one_or_none()
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return changed_id is not None

    changed = await store_call(
        operation,
        _flip,
        date=day.isoformat(),
        time_slot=time_slot,
        team_number=team_number,
    )
    logger.info(
        operation,
        extra={
            "extra": {
                "date": day.isoformat(),
                "time_slot": time_slot,
                "team_number": team_number,
                "changed": changed,
            }
        },
    )
    return changed


async def block_slot(session: AsyncSession, *, day: date, time_slot: str, team_number: int) -> bool:
    return await _flip_unheld(
        session,
        "block_slot",
        day=day,
        time_slot=time_slot,
        team_number=team_number,
        from_available=True,
    )


async def unblock_slot(session: AsyncSession, *, day: date, time_slot: str, team_number: int) -> bool:
    return await _flip_unheld(
        session,
        "unblock_slot",
        day=day,
        time_slot=time_slot,
        team_number=team_number,
        from_available=False,
    )
