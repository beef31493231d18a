import asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from uredno.domain.availability import reservation
from uredno.domain.availability.db_models import AvailabilitySlot
from uredno.domain.bookings import service as booking_service
from uredno.domain.bookings.db_models import Booking
from uredno.domain.bookings.numbers import BOOKING_NUMBER_RE, normalize_phone
from uredno.domain.bookings.schemas import BookingCreate
from uredno.domain.errors import SlotConflictError, TransientStoreError, ValidationError
from tests.conftest import create_service, next_service_day, seed_day

SLOT = "11:00-13:00"


def _payload(service_id: str, day: date, /, **overrides) -> BookingCreate:
    data = {
        "customer": {
            "first_name": "Ana",
            "last_name": "Horvat",
            "email": "ana.horvat@example.com",
            "phone": "091 234 5678",
            "address": "Ilica 1",
            "city": "Zagreb",
            "postal_code": "10000",
        },
        "service_id": service_id,
        "booking_date": day.isoformat(),
        "time_slot": SLOT,
        "service_type": "regular",
        "property_size": 60,
        "extras": [{"name": "Pranje hladnjaka", "price": 15}],
    }
    data.update(overrides)
    return BookingCreate.model_validate(data)


async def _count_bookings(session) -> int:
    return (await session.execute(select(func.count(Booking.id)))).scalar_one()


async def _held_by(session, booking_id: str) -> list[AvailabilitySlot]:
    result = await session.execute(select(AvailabilitySlot).where(AvailabilitySlot.booking_id == booking_id))
    return list(result.scalars())


@pytest.mark.anyio
async def test_create_booking_claims_slot_and_persists_pending_booking(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))

    assert booking.status == "pending"
    assert BOOKING_NUMBER_RE.match(booking.booking_number)
    assert booking.team_number == 1
    assert booking.customer_phone == "+385912345678"
    assert booking.base_price == Decimal("48.00")
    assert booking.extras_cost == Decimal("15.00")
    assert booking.total_price == Decimal("63.00")
    assert booking.extras == [{"name": "Pranje hladnjaka", "price": 15.0, "quantity": None}]

    async with async_session_maker() as session:
        held = await _held_by(session, booking.id)
        stored = await booking_service.get_booking_by_number(session, booking.booking_number)
    assert [(cell.date, cell.time_slot, cell.team_number) for cell in held] == [(day, SLOT, 1)]
    assert stored is not None and stored.id == booking.id


@pytest.mark.anyio
async def test_supplied_total_price_skips_pricing(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(
            session, _payload(service.id, day, total_price="99.90", property_size=None)
        )
    assert booking.total_price == Decimal("99.90")
    assert booking.base_price is None


@pytest.mark.anyio
async def test_lowest_open_team_is_chosen(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        await reservation.block_slot(session, day=day, time_slot=SLOT, team_number=1)
        booking = await booking_service.create_booking(session, _payload(service.id, day))
    assert booking.team_number == 2


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("field_name", "message"),
    [
        ("customer", "Missing required field: customer"),
        ("service_id", "Missing required field: service_id"),
        ("booking_date", "Missing required field: booking_date"),
        ("time_slot", "Missing required field: time_slot"),
        ("service_type", "Missing required field: service_type"),
    ],
)
async def test_missing_required_field_is_reported(async_session_maker, field_name, message):
    day = next_service_day()
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, _payload("svc", day, **{field_name: None}))
    assert exc_info.value.detail == message


@pytest.mark.anyio
@pytest.mark.parametrize("field_name", ["first_name", "last_name", "email", "phone"])
async def test_missing_customer_field_is_reported(async_session_maker, field_name):
    day = next_service_day()
    payload = _payload("svc", day)
    setattr(payload.customer, field_name, None)
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, payload)
    assert exc_info.value.detail == f"Missing customer field: {field_name}"


@pytest.mark.anyio
async def test_blank_strings_count_as_missing(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, _payload("svc", day, service_type="   "))
    assert exc_info.value.detail == "Missing required field: service_type"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("overrides", "detail"),
    [
        ({"time_slot": "08:00-10:00"}, "Invalid time slot: 08:00-10:00"),
        ({"booking_date": (date.today() - timedelta(days=3)).isoformat()}, "Booking date must not be in the past"),
        ({"team_number": 9}, "Unknown team: 9"),
    ],
)
async def test_invalid_booking_input_is_rejected(async_session_maker, overrides, detail):
    day = next_service_day()
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, _payload("svc", day, **overrides))
    assert exc_info.value.detail == detail


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("field_name", "value", "detail"),
    [
        ("email", "not-an-email", "Invalid email address"),
        ("phone", "12345", "Invalid phone number"),
    ],
)
async def test_invalid_contact_details_are_rejected(async_session_maker, field_name, value, detail):
    day = next_service_day()
    payload = _payload("svc", day)
    setattr(payload.customer, field_name, value)
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, payload)
    assert exc_info.value.detail == detail


@pytest.mark.anyio
async def test_unknown_service_is_a_validation_error(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        await seed_day(session, day)
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(session, _payload("missing", day))
        assert await _count_bookings(session) == 0
    assert exc_info.value.detail == "Service not found"


@pytest.mark.anyio
async def test_held_team_conflicts_without_creating_booking(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        other = str(uuid.uuid4())
        await reservation.claim_slot(session, day=day, time_slot=SLOT, team_number=2, booking_id=other)

        with pytest.raises(SlotConflictError) as exc_info:
            await booking_service.create_booking(session, _payload(service.id, day, team_number=2))

        assert await _count_bookings(session) == 0
        held = await _held_by(session, other)
    assert exc_info.value.detail == "Selected time slot is no longer available"
    assert len(held) == 1


@pytest.mark.anyio
async def test_no_open_team_is_a_conflict(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day, teams=1)
        await reservation.block_slot(session, day=day, time_slot=SLOT, team_number=1)
        with pytest.raises(SlotConflictError):
            await booking_service.create_booking(session, _payload(service.id, day))
        assert await _count_bookings(session) == 0


@pytest.mark.anyio
async def test_failed_persistence_releases_the_claimed_slot(async_session_maker, monkeypatch):
    day = next_service_day()
    claimed_ids: list[str] = []
    original_claim = reservation.claim_slot

    async def _recording_claim(session, **kwargs):
        claimed_ids.append(kwargs["booking_id"])
        return await original_claim(session, **kwargs)

    async def _failing_persist(session, draft, *, now):
        raise TransientStoreError(detail="Store call failed: persist_booking", operation="persist_booking")

    monkeypatch.setattr(reservation, "claim_slot", _recording_claim)
    monkeypatch.setattr(booking_service, "_persist_booking", _failing_persist)

    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        with pytest.raises(TransientStoreError):
            await booking_service.create_booking(session, _payload(service.id, day))

    assert len(claimed_ids) == 1
    async with async_session_maker() as session:
        assert await _held_by(session, claimed_ids[0]) == []
        assert await _count_bookings(session) == 0
        teams = await reservation_open_teams(session, day)
    assert teams == [1, 2, 3]


async def reservation_open_teams(session, day: date) -> list[int]:
    result = await session.execute(
        select(AvailabilitySlot.team_number)
        .where(
            AvailabilitySlot.date == day,
            AvailabilitySlot.time_slot == SLOT,
            AvailabilitySlot.is_available.is_(True),
        )
        .order_by(AvailabilitySlot.team_number)
    )
    return list(result.scalars())


@pytest.mark.anyio
async def test_cancel_booking_releases_slot(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))
        cancelled = await booking_service.cancel_booking(session, booking.booking_number)
        held = await _held_by(session, booking.id)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert held == []

    async with async_session_maker() as session:
        with pytest.raises(ValidationError):
            await booking_service.cancel_booking(session, booking.booking_number)


@pytest.mark.anyio
async def test_status_transitions_follow_lifecycle(async_session_maker):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))
        number = booking.booking_number

        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(session, number, "completed")

        confirmed = await booking_service.update_booking_status(session, number, "confirmed")
        assert confirmed.confirmed_at is not None
        await booking_service.update_booking_status(session, number, "in_progress")
        completed = await booking_service.update_booking_status(session, number, "completed")
        assert completed.completed_at is not None

        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(session, number, "cancelled")
        held = await _held_by(session, booking.id)
    assert completed.status == "completed"
    assert len(held) == 1


def test_assert_valid_booking_transition_rejects_unknown_status():
    with pytest.raises(ValidationError):
        booking_service.assert_valid_booking_transition("pending", "archived")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("091 234 5678", "+385912345678"),
        ("+385 91 234 5678", "+385912345678"),
        ("00385 1 4567 890", "+38514567890"),
        ("385-98-765-432", "+38598765432"),
        ("12345", None),
        ("", None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


async def _open_teams_after_cancel_attempt(async_session_maker, booking, day):
    async with async_session_maker() as session:
        stored = await booking_service.get_booking_by_number(session, booking.booking_number)
        held = await _held_by(session, booking.id)
        teams = await reservation_open_teams(session, day)
    return stored, held, teams


@pytest.mark.anyio
async def test_failed_release_leaves_booking_uncancelled_and_retry_succeeds(async_session_maker, monkeypatch):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))

    original_release = reservation.release_held

    async def _failing_release(session, booking_id):
        raise OperationalError("UPDATE availability", {}, Exception("connection reset"))

    monkeypatch.setattr(reservation, "release_held", _failing_release)
    async with async_session_maker() as session:
        with pytest.raises(TransientStoreError) as exc_info:
            await booking_service.cancel_booking(session, booking.booking_number)
    assert exc_info.value.operation == "cancel_booking"

    stored, held, teams = await _open_teams_after_cancel_attempt(async_session_maker, booking, day)
    assert stored.status == "pending"
    assert stored.cancelled_at is None
    assert [cell.team_number for cell in held] == [1]
    assert teams == [2, 3]

    monkeypatch.setattr(reservation, "release_held", original_release)
    async with async_session_maker() as session:
        cancelled = await booking_service.cancel_booking(session, booking.booking_number)
    assert cancelled.status == "cancelled"

    stored, held, teams = await _open_teams_after_cancel_attempt(async_session_maker, booking, day)
    assert stored.status == "cancelled"
    assert held == []
    assert teams == [1, 2, 3]


@pytest.mark.anyio
async def test_failed_status_commit_keeps_slot_held(async_session_maker, monkeypatch):
    day = next_service_day()
    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))

    async with async_session_maker() as session:
        async def _failing_commit():
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(session, "commit", _failing_commit)
        with pytest.raises(TransientStoreError):
            await booking_service.cancel_booking(session, booking.booking_number)

    stored, held, teams = await _open_teams_after_cancel_attempt(async_session_maker, booking, day)
    assert stored.status == "pending"
    assert len(held) == 1
    assert teams == [2, 3]


def _persist_then_fail(error: BaseException):
    original_persist = booking_service._persist_booking

    async def _persist(session, draft, *, now):
        await original_persist(session, draft, now=now)
        raise error

    return _persist


@pytest.mark.anyio
async def test_timeout_after_commit_keeps_claim_and_returns_booking(async_session_maker, monkeypatch):
    day = next_service_day()
    monkeypatch.setattr(
        booking_service,
        "_persist_booking",
        _persist_then_fail(TransientStoreError(detail="Store call timed out: persist_booking", operation="persist_booking")),
    )

    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        booking = await booking_service.create_booking(session, _payload(service.id, day))

    assert booking.status == "pending"
    assert booking.team_number == 1
    async with async_session_maker() as session:
        held = await _held_by(session, booking.id)
        assert await _count_bookings(session) == 1
        teams = await reservation_open_teams(session, day)
    assert [cell.team_number for cell in held] == [1]
    assert teams == [2, 3]


@pytest.mark.anyio
async def test_cancellation_after_commit_keeps_claim(async_session_maker, monkeypatch):
    day = next_service_day()
    monkeypatch.setattr(booking_service, "_persist_booking", _persist_then_fail(asyncio.CancelledError()))

    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        with pytest.raises(asyncio.CancelledError):
            await booking_service.create_booking(session, _payload(service.id, day))

    async with async_session_maker() as session:
        booking_ids = list((await session.execute(select(Booking.id))).scalars())
        assert len(booking_ids) == 1
        held = await _held_by(session, booking_ids[0])
    assert [cell.team_number for cell in held] == [1]


@pytest.mark.anyio
async def test_cancellation_before_commit_releases_claim(async_session_maker, monkeypatch):
    day = next_service_day()

    async def _cancelled_persist(session, draft, *, now):
        raise asyncio.CancelledError()

    monkeypatch.setattr(booking_service, "_persist_booking", _cancelled_persist)

    async with async_session_maker() as session:
        service = await create_service(session)
        await seed_day(session, day)
        with pytest.raises(asyncio.CancelledError):
            await booking_service.create_booking(session, _payload(service.id, day))

    async with async_session_maker() as session:
        assert await _count_bookings(session) == 0
        teams = await reservation_open_teams(session, day)
    assert teams == [1, 2, 3]
