"""Booking orchestration.

``create_booking`` walks a booking through validating, pricing, reserving and
persisting. A slot is claimed before the booking row exists; if the row cannot
be written, and a fresh lookup confirms it is absent, the claim is released
before the error propagates, so no slot is left held without an owning booking.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability import reservation
from uredno.domain.availability import service as availability_service
from uredno.domain.availability.slots import has_started, is_known_time_slot
from uredno.domain.bookings.db_models import Booking
from uredno.domain.bookings.numbers import generate_booking_number, normalize_phone
from uredno.domain.bookings.schemas import BookingCreate
from uredno.domain.catalog import service as catalog_service
from uredno.domain.errors import (
    DomainError,
    NotFoundError,
    SlotConflictError,
    TransientStoreError,
    ValidationError,
)
from uredno.domain.pricing.calculator import calculate_extras_cost, calculate_price, to_money
from uredno.infra.metrics import metrics
from uredno.infra.store import store_call
from uredno.settings import settings

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("customer", "service_id", "booking_date", "time_slot", "service_type")
REQUIRED_CUSTOMER_FIELDS = ("first_name", "last_name", "email", "phone")
BOOKING_NUMBER_ATTEMPTS = 5

BOOKING_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"in_progress", "cancelled"},
    "in_progress": {"completed"},
    "completed": set(),
    "cancelled": set(),
}

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


class BookingStage(str, Enum):
    VALIDATING = "validating"
    PRICING = "pricing"
    RESERVING = "reserving"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BookingDraft:
    booking_id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    service_id: str
    service_type: str
    booking_date: date
    time_slot: str
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    team_number: int | None = None
    property_size: Decimal | None = None
    extras: list[dict] = field(default_factory=list)
    special_requests: str | None = None
    base_price: Decimal | None = None
    extras_cost: Decimal = Decimal("0.00")
    total_price: Decimal | None = None


def _log_stage(stage: BookingStage, booking_id: str, **extra) -> None:  # noqa: ANN003
    logger.info(
        "booking_stage",
        extra={"extra": {"stage": stage.value, "booking_id": booking_id, **extra}},
    )


def assert_valid_booking_transition(current: str, target: str) -> None:
    if current not in BOOKING_TRANSITIONS:
        raise ValidationError(detail=f"Unknown booking status: {current}")
    if target not in BOOKING_TRANSITIONS:
        raise ValidationError(detail=f"Unknown booking status: {target}")
    if target not in BOOKING_TRANSITIONS[current]:
        raise ValidationError(
            detail=f"Cannot change booking status from {current} to {target}",
            errors=[{"field": "status", "current": current, "target": target}],
        )


def validate_booking_request(payload: BookingCreate, *, now: datetime, booking_id: str) -> BookingDraft:
    for field_name in REQUIRED_FIELDS:
        if getattr(payload, field_name) is None:
            raise ValidationError(detail=f"Missing required field: {field_name}")
    customer = payload.customer
    for field_name in REQUIRED_CUSTOMER_FIELDS:
        if getattr(customer, field_name) is None:
            raise ValidationError(detail=f"Missing customer field: {field_name}")

    try:
        email = str(_EMAIL_ADAPTER.validate_python(customer.email.strip()))
    except PydanticValidationError as exc:
        raise ValidationError(
            detail="Invalid email address",
            errors=[{"field": "customer.email"}],
        ) from exc
    phone = normalize_phone(customer.phone)
    if phone is None:
        raise ValidationError(
            detail="Invalid phone number",
            errors=[{"field": "customer.phone"}],
        )
    if not is_known_time_slot(payload.time_slot):
        raise ValidationError(
            detail=f"Invalid time slot: {payload.time_slot}",
            errors=[{"field": "time_slot"}],
        )
    today = now.date()
    if payload.booking_date < today:
        raise ValidationError(
            detail="Booking date must not be in the past",
            errors=[{"field": "booking_date"}],
        )
    if payload.booking_date == today and has_started(today, payload.time_slot, now):
        raise ValidationError(
            detail="Selected time slot has already started",
            errors=[{"field": "time_slot"}],
        )
    if payload.team_number is not None and payload.team_number not in settings.team_numbers:
        raise ValidationError(
            detail=f"Unknown team: {payload.team_number}",
            errors=[{"field": "team_number"}],
        )
    if payload.total_price is not None and payload.total_price < 0:
        raise ValidationError(
            detail="Total price must not be negative",
            errors=[{"field": "total_price"}],
        )

    return BookingDraft(
        booking_id=booking_id,
        first_name=customer.first_name.strip(),
        last_name=customer.last_name.strip(),
        email=email,
        phone=phone,
        address=customer.address,
        city=customer.city,
        postal_code=customer.postal_code,
        service_id=payload.service_id,
        service_type=payload.service_type,
        booking_date=payload.booking_date,
        time_slot=payload.time_slot,
        team_number=payload.team_number,
        property_size=payload.property_size,
        special_requests=payload.special_requests,
    )


async def _price(session: AsyncSession, draft: BookingDraft, payload: BookingCreate) -> None:
    service = await catalog_service.get_active_service(session, draft.service_id)
    if service is None:
        raise ValidationError(
            detail="Service not found",
            errors=[{"field": "service_id"}],
        )
    draft.extras = [
        {
            "name": extra.name,
            "price": float(to_money(extra.price)),
            "quantity": extra.quantity,
        }
        for extra in payload.extras
    ]
    if payload.total_price is not None:
        draft.extras_cost = calculate_extras_cost(payload.extras)
        draft.total_price = to_money(payload.total_price)
        return
    breakdown = calculate_price(service, draft.property_size, payload.extras)
    draft.base_price = breakdown.base_price
    draft.extras_cost = breakdown.extras_cost
    draft.total_price = breakdown.total_price


async def _choose_team(session: AsyncSession, draft: BookingDraft) -> int:
    if draft.team_number is not None:
        return draft.team_number
    teams = await availability_service.is_slot_open(session, draft.booking_date, draft.time_slot)
    for team in teams:
        if team.is_available:
            return team.team_number
    raise SlotConflictError()


async def _persist_booking(session: AsyncSession, draft: BookingDraft, *, now: datetime) -> Booking:
    async def _insert() -> Booking:
        for attempt in range(1, BOOKING_NUMBER_ATTEMPTS + 1):
            booking = Booking(
                id=draft.booking_id,
                booking_number=generate_booking_number(now.date()),
                status="pending",
                customer_first_name=draft.first_name,
                customer_last_name=draft.last_name,
                customer_email=draft.email,
                customer_phone=draft.phone,
                customer_address=draft.address,
                customer_city=draft.city,
                customer_postal_code=draft.postal_code,
                service_id=draft.service_id,
                service_type=draft.service_type,
                booking_date=draft.booking_date,
                time_slot=draft.time_slot,
                team_number=draft.team_number,
                property_size=draft.property_size,
                extras=draft.extras,
                base_price=draft.base_price,
                extras_cost=draft.extras_cost,
                total_price=draft.total_price,
                special_requests=draft.special_requests,
                created_at=now,
                updated_at=now,
            )
            session.add(booking)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    "booking_number_collision",
                    extra={"extra": {"booking_id": draft.booking_id, "attempt": attempt}},
                )
                continue
            except BaseException:
                await session.rollback()
                raise
            return booking
        raise TransientStoreError(
            detail="Could not allocate a booking number",
            operation="persist_booking",
        )

    return await store_call("persist_booking", _insert, booking_id=draft.booking_id)


async def create_booking(
    session: AsyncSession,
    payload: BookingCreate,
    *,
    now: datetime | None = None,
) -> Booking:
    current = now or availability_service.local_now()
    booking_id = str(uuid.uuid4())
    stage = BookingStage.VALIDATING
    _log_stage(stage, booking_id)
    try:
        draft = validate_booking_request(payload, now=current, booking_id=booking_id)

        stage = BookingStage.PRICING
        _log_stage(stage, booking_id, service_id=draft.service_id)
        await _price(session, draft, payload)

        stage = BookingStage.RESERVING
        _log_stage(stage, booking_id, date=draft.booking_date.isoformat(), time_slot=draft.time_slot)
        draft.team_number = await _choose_team(session, draft)
        claimed = await reservation.claim_slot(
            session,
            day=draft.booking_date,
            time_slot=draft.time_slot,
            team_number=draft.team_number,
            booking_id=booking_id,
        )
        if not claimed:
            raise SlotConflictError()

        stage = BookingStage.PERSISTING
        _log_stage(stage, booking_id, team_number=draft.team_number)
        try:
            booking = await _persist_booking(session, draft, now=current)
        except BaseException as exc:
            booking = await _settle_failed_persist(session, booking_id, exc)
            if booking is None:
                raise
    except DomainError as exc:
        _log_stage(BookingStage.FAILED, booking_id, failed_stage=stage.value, reason=type(exc).__name__)
        metrics.record_booking("conflict" if isinstance(exc, SlotConflictError) else "failed")
        raise

    _log_stage(BookingStage.DONE, booking_id, booking_number=booking.booking_number)
    metrics.record_booking("created")
    return booking


async def _settle_failed_persist(
    session: AsyncSession,
    booking_id: str,
    exc: BaseException,
) -> Booking | None:
    """Decide what a failed persist left behind before touching the claim.

    A timeout can fire after the commit reached the database, so the row is
    looked up first. The claim is released only when the row is known to be
    absent. A committed row keeps its claim: it is returned when the failure
    was a store error, otherwise the failure is re-raised.
    """
    try:
        persisted = await _find_persisted(session, booking_id)
    except DomainError:
        logger.error("booking_persist_outcome_unknown", extra={"extra": {"booking_id": booking_id}})
        return None
    if persisted is None:
        await _compensate(session, booking_id)
        return None
    logger.warning(
        "booking_persist_recovered",
        extra={"extra": {"booking_id": booking_id, "error_type": type(exc).__name__}},
    )
    if isinstance(exc, TransientStoreError):
        return persisted
    return None


async def _find_persisted(session: AsyncSession, booking_id: str) -> Booking | None:
    # Fresh session: the caller's may have been interrupted mid-commit.
    async def _lookup() -> Booking | None:
        async with AsyncSession(session.bind, expire_on_commit=False) as lookup:
            return await lookup.get(Booking, booking_id)

    return await store_call("find_persisted_booking", _lookup, booking_id=booking_id)


async def _compensate(session: AsyncSession, booking_id: str) -> None:
    try:
        await reservation.release_slot(session, booking_id)
    except DomainError:
        logger.error("booking_compensation_failed", extra={"extra": {"booking_id": booking_id}})
    else:
        logger.warning("booking_compensated", extra={"extra": {"booking_id": booking_id}})


async def get_booking_by_number(session: AsyncSession, booking_number: str) -> Booking | None:
    stmt = select(Booking).where(Booking.booking_number == booking_number)

    async def _run() -> Booking | None:
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    return await store_call("get_booking_by_number", _run, booking_number=booking_number)


async def _require_booking(session: AsyncSession, booking_number: str) -> Booking:
    booking = await get_booking_by_number(session, booking_number)
    if booking is None:
        raise NotFoundError(detail="Booking not found")
    return booking


async def _save(session: AsyncSession, booking: Booking, operation: str) -> Booking:
    async def _commit() -> Booking:
        try:
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return booking

    return await store_call(operation, _commit, booking_id=booking.id)


async def cancel_booking(
    session: AsyncSession,
    booking_number: str,
    *,
    now: datetime | None = None,
) -> Booking:
    booking = await _require_booking(session, booking_number)
    assert_valid_booking_transition(booking.status, "cancelled")
    current = now or availability_service.local_now()
    booking_id = booking.id

    async def _cancel() -> bool:
        # Status change and slot release commit together or not at all.
        try:
            released = await reservation.release_held(session, booking_id)
            booking.status = "cancelled"
            booking.cancelled_at = current
            booking.updated_at = current
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return released

    released = await store_call("cancel_booking", _cancel, booking_id=booking_id)
    reservation.record_release(booking_id, released)
    metrics.record_booking("cancelled")
    logger.info(
        "booking_cancelled",
        extra={"extra": {"booking_id": booking.id, "booking_number": booking.booking_number}},
    )
    return booking


async def update_booking_status(
    session: AsyncSession,
    booking_number: str,
    status: str,
    *,
    now: datetime | None = None,
) -> Booking:
    if status == "cancelled":
        return await cancel_booking(session, booking_number, now=now)
    booking = await _require_booking(session, booking_number)
    previous = booking.status
    assert_valid_booking_transition(previous, status)
    current = now or availability_service.local_now()
    booking.status = status
    booking.updated_at = current
    if status == "confirmed":
        booking.confirmed_at = current
    elif status == "completed":
        booking.completed_at = current
    await _save(session, booking, "update_booking_status")
    metrics.record_booking(status)
    logger.info(
        "booking_status_changed",
        extra={
            "extra": {
                "booking_id": booking.id,
                "from_status": previous,
                "to_status": status,
            }
        },
    )
    return booking
