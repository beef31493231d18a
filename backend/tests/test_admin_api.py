import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from uredno.domain.availability.db_models import AvailabilitySlot
from uredno.domain.availability.slots import TIME_SLOTS
from uredno.settings import settings
from tests.conftest import next_service_day, seed_day

SLOT = "17:00-19:00"
MONDAY = date(2030, 6, 3)


def _seed(async_session_maker, day: date, teams: int = 3) -> None:
    async def _run() -> None:
        async with async_session_maker() as session:
            await seed_day(session, day, teams=teams)

    asyncio.run(_run())


def _grid_rows(async_session_maker) -> int:
    async def _run() -> int:
        async with async_session_maker() as session:
            return (await session.execute(select(func.count(AvailabilitySlot.id)))).scalar_one()

    return asyncio.run(_run())


def _create_booking(client, service_id: str, day: date) -> dict:
    response = client.post(
        "/api/bookings",
        json={
            "customer": {
                "first_name": "Ivana",
                "last_name": "Babić",
                "email": "ivana@example.com",
                "phone": "01 4567 890",
            },
            "service_id": service_id,
            "booking_date": day.isoformat(),
            "time_slot": SLOT,
            "service_type": "regular",
            "property_size": 45,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["booking"]


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong-key"},
        {"Authorization": "Basic dGVzdDp0ZXN0"},
        {"Authorization": "Bearer ključ-šifra".encode("utf-8")},
    ],
)
def test_admin_routes_require_service_role_key(client, headers):
    response = client.post("/api/admin/availability/seed", json={"days": 1}, headers=headers)

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


def test_admin_routes_fail_closed_without_configured_key(client, admin_headers):
    settings.store_service_role_key = None

    response = client.post("/api/admin/availability/seed", json={"days": 1}, headers=admin_headers)

    assert response.status_code == 503
    assert response.json()["error"] == "Missing STORE_SERVICE_ROLE_KEY - required for admin operations"


def test_seed_availability_creates_grid(client, admin_headers, async_session_maker):
    response = client.post(
        "/api/admin/availability/seed",
        json={"start_date": MONDAY.isoformat(), "days": 7},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body == {
        "start_date": MONDAY.isoformat(),
        "end_date": (MONDAY + timedelta(days=6)).isoformat(),
        "created": 6 * len(TIME_SLOTS) * settings.team_count,
    }
    assert _grid_rows(async_session_maker) == body["created"]

    again = client.post(
        "/api/admin/availability/seed",
        json={"start_date": MONDAY.isoformat(), "days": 7},
        headers=admin_headers,
    )
    assert again.json()["created"] == 0


def test_seed_availability_rejects_out_of_range_days(client, admin_headers):
    response = client.post("/api/admin/availability/seed", json={"days": 0}, headers=admin_headers)
    assert response.status_code == 400


def test_block_and_unblock_cell(client, admin_headers, async_session_maker):
    day = next_service_day()
    _seed(async_session_maker, day)
    cell = {"date": day.isoformat(), "time_slot": SLOT, "team_number": 1}

    blocked = client.post("/api/admin/availability/block", json=cell, headers=admin_headers)
    assert blocked.status_code == 200
    assert blocked.json() == {"changed": True, "cell": cell}

    teams = client.get("/api/availability", params={"date": day.isoformat(), "time_slot": SLOT}).json()
    assert teams["availability"][0] == {"team_number": 1, "is_available": False}

    unblocked = client.post("/api/admin/availability/unblock", json=cell, headers=admin_headers)
    assert unblocked.json()["changed"] is True
    repeat = client.post("/api/admin/availability/unblock", json=cell, headers=admin_headers)
    assert repeat.json()["changed"] is False


def test_block_rejects_unknown_slot(client, admin_headers):
    cell = {"date": next_service_day().isoformat(), "time_slot": "20:00-22:00", "team_number": 1}
    response = client.post("/api/admin/availability/block", json=cell, headers=admin_headers)
    assert response.status_code == 400


def test_admin_cancel_releases_slot(client, admin_headers, async_session_maker, seeded_service):
    day = next_service_day()
    _seed(async_session_maker, day, teams=1)
    booking = _create_booking(client, seeded_service, day)

    response = client.post(f"/api/admin/bookings/{booking['booking_number']}/cancel", headers=admin_headers)

    assert response.status_code == 200
    cancelled = response.json()["booking"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_at"] is not None

    rebooked = _create_booking(client, seeded_service, day)
    assert rebooked["team_number"] == 1


def test_admin_status_updates(client, admin_headers, async_session_maker, seeded_service):
    day = next_service_day()
    _seed(async_session_maker, day)
    booking = _create_booking(client, seeded_service, day)
    url = f"/api/admin/bookings/{booking['booking_number']}/status"

    confirmed = client.patch(url, json={"status": "confirmed"}, headers=admin_headers)
    assert confirmed.status_code == 200
    assert confirmed.json()["booking"]["status"] == "confirmed"
    assert confirmed.json()["booking"]["confirmed_at"] is not None

    invalid = client.patch(url, json={"status": "pending"}, headers=admin_headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Cannot change booking status from confirmed to pending"

    unknown = client.patch(url, json={"status": "archived"}, headers=admin_headers)
    assert unknown.status_code == 400


def test_admin_actions_on_unknown_booking_are_404(client, admin_headers):
    response = client.post("/api/admin/bookings/WU00000000/cancel", headers=admin_headers)
    assert response.status_code == 404
