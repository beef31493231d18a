from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.catalog.db_models import Service
from uredno.infra.store import store_call

POPULAR_LIMIT = 3


def _active():
    return select(Service).where(Service.active.is_(True)).order_by(Service.display_order, Service.name)


async def _all(session: AsyncSession, stmt, operation: str) -> list[Service]:
    async def _run() -> list[Service]:
        result = await session.execute(stmt)
        return list(result.scalars().all())

    return await store_call(operation, _run)


async def list_services(session: AsyncSession) -> list[Service]:
    return await _all(session, _active(), "list_services")


async def list_popular_services(session: AsyncSession, limit: int = POPULAR_LIMIT) -> list[Service]:
    stmt = _active().where(Service.popular.is_(True)).limit(limit)
    return await _all(session, stmt, "list_popular_services")


async def list_services_by_category(session: AsyncSession, category: str) -> list[Service]:
    stmt = _active().where(Service.category == category)
    return await _all(session, stmt, "list_services_by_category")


async def search_services(session: AsyncSession, query: str) -> list[Service]:
    term = query.strip()
    if not term:
        return await list_services(session)
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    stmt = _active().where(
        or_(
            Service.name.ilike(pattern, escape="\\"),
            Service.description.ilike(pattern, escape="\\"),
        )
    )
    return await _all(session, stmt, "search_services")


async def get_service_by_slug(session: AsyncSession, slug: str) -> Service | None:
    stmt = _active().where(Service.slug == slug)

    async def _run() -> Service | None:
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    return await store_call("get_service_by_slug", _run, slug=slug)


async def get_active_service(session: AsyncSession, service_id: str) -> Service | None:
    stmt = _active().where(Service.id == service_id)

    async def _run() -> Service | None:
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    return await store_call("get_active_service", _run, service_id=service_id)


_UPSERT_FIELDS = (
    "name",
    "category",
    "base_price",
    "price_per_sqm",
    "min_price",
    "duration_hours",
    "description",
    "features",
    "popular",
    "active",
    "display_order",
)


def _money(value) -> Decimal | None:  # noqa: ANN001
    return None if value is None else Decimal(str(value))


def _service_values(item: dict) -> dict:
    values = {key: item[key] for key in _UPSERT_FIELDS if key in item}
    for key in ("base_price", "price_per_sqm", "min_price", "duration_hours"):
        if key in values:
            values[key] = _money(values[key])
    return values


async def upsert_services(session: AsyncSession, items: list[dict]) -> tuple[int, int]:
    """Insert or update services matched by slug. Returns (inserted, updated)."""
    slugs = []
    for item in items:
        slug = item.get("slug")
        if not slug or not item.get("name") or not item.get("category"):
            raise ValueError(f"service entries need slug, name and category: {item!r}")
        slugs.append(slug)

    async def _run() -> tuple[int, int]:
        result = await session.execute(select(Service).where(Service.slug.in_(slugs)))
        existing = {service.slug: service for service in result.scalars()}
        inserted = updated = 0
        try:
            for item in items:
                values = _service_values(item)
                service = existing.get(item["slug"])
                if service is None:
                    session.add(Service(slug=item["slug"], **values))
                    inserted += 1
                else:
                    for key, value in values.items():
                        setattr(service, key, value)
                    updated += 1
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return inserted, updated

    return await store_call("upsert_services", _run, count=len(items), timeout=60.0)
