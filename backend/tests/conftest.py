import asyncio
import inspect
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ["APP_ENV"] = "dev"
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["STORE_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["STORE_URL"] = "https://store.uredno.test"
os.environ["STORE_ANON_KEY"] = "test-anon-key"
os.environ["PUBLIC_BASE_URL"] = "https://uredno.test"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ.pop("REDIS_URL", None)
os.environ.pop("METRICS_TOKEN", None)


def ensure_event_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop


ensure_event_loop()

import anyio
import pytest
from datetime import date, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from uredno.domain.availability import db_models as availability_db_models  # noqa: F401
from uredno.domain.availability import grid
from uredno.domain.bookings import db_models as booking_db_models  # noqa: F401
from uredno.domain.catalog.db_models import Service
from uredno.domain.inquiries import db_models as inquiry_db_models  # noqa: F401
from uredno.infra.db import Base, get_db_session
from uredno.main import app
from uredno.settings import settings


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def test_engine():
    db_path = Path("test.db")
    if db_path.exists():
        db_path.unlink()
    # NullPool: every session gets its own connection, so concurrent claims
    # really race inside SQLite instead of sharing one transaction.
    engine = create_async_engine(
        "sqlite+aiosqlite:///./test.db",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="session")
def async_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def restore_settings():
    original_app_env = settings.app_env
    original_testing = settings.testing
    original_metrics_enabled = settings.metrics_enabled
    original_metrics_token = settings.metrics_token
    original_service_role_key = settings.store_service_role_key
    original_public_base_url = settings.public_base_url
    original_trust_proxy_headers = settings.trust_proxy_headers
    original_team_count = settings.team_count
    original_horizon = settings.availability_horizon_days
    original_timeout = settings.store_call_timeout_seconds
    yield
    settings.app_env = original_app_env
    settings.testing = original_testing
    settings.metrics_enabled = original_metrics_enabled
    settings.metrics_token = original_metrics_token
    settings.store_service_role_key = original_service_role_key
    settings.public_base_url = original_public_base_url
    settings.trust_proxy_headers = original_trust_proxy_headers
    settings.team_count = original_team_count
    settings.availability_horizon_days = original_horizon
    settings.store_call_timeout_seconds = original_timeout


@pytest.fixture(autouse=True)
def restore_app_state():
    """Restore app.state after each test to prevent state pollution."""
    original_metrics = getattr(app.state, "metrics", None)
    original_app_settings = getattr(app.state, "app_settings", None)
    yield
    if original_metrics is not None:
        app.state.metrics = original_metrics
    if original_app_settings is not None:
        app.state.app_settings = original_app_settings


@pytest.fixture(autouse=True)
def clean_database(test_engine):
    async def truncate_tables() -> None:
        async with test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    asyncio.run(truncate_tables())
    services = getattr(app.state, "services", None)
    limiters = [
        getattr(app.state, "rate_limiter", None),
        getattr(services, "contact_rate_limiter", None),
    ]
    for rate_limiter in limiters:
        reset = getattr(rate_limiter, "reset", None) if rate_limiter else None
        if not reset:
            continue
        if inspect.iscoroutinefunction(reset):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                asyncio.run(reset())
            else:
                anyio.from_thread.run(reset)
        else:
            reset()
    yield


@pytest.fixture()
def client(async_session_maker):
    ensure_event_loop()

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory


@pytest.fixture()
def client_no_raise(async_session_maker):
    """Test client that returns HTTP responses instead of raising server exceptions."""

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory


@pytest.fixture()
def admin_headers():
    return {"Authorization": f"Bearer {settings.store_service_role_key}"}


def next_service_day(start: date | None = None, offset: int = 2) -> date:
    """First non-Sunday at least ``offset`` days after ``start`` (default: today)."""
    day = (start or date.today()) + timedelta(days=offset)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


async def create_service(session, **overrides) -> Service:
    values = {
        "name": "Redovno čišćenje",
        "slug": "redovno-ciscenje",
        "category": "regular",
        "base_price": Decimal("35.00"),
        "price_per_sqm": Decimal("0.80"),
        "min_price": Decimal("35.00"),
        "duration_hours": Decimal("2.0"),
        "description": "Redovito održavanje čistoće",
        "features": ["Usisavanje", "Brisanje prašine"],
        "popular": True,
        "active": True,
        "display_order": 1,
    }
    values.update(overrides)
    service = Service(**values)
    session.add(service)
    await session.commit()
    return service


async def seed_day(session, day: date, teams: int = 3) -> int:
    return await grid.seed_grid(session, start=day, days=1, team_numbers=list(range(1, teams + 1)))


@pytest.fixture()
def seeded_service(async_session_maker):
    async def _seed() -> str:
        async with async_session_maker() as session:
            service = await create_service(session)
            return service.id

    return asyncio.run(_seed())
