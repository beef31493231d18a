"""Price calculation for a service, an optional property size and extras.

Amounts are ``Decimal`` and rounded half-up to whole cents once per component,
so the same inputs always give the same total.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.catalog import service as catalog_service
from uredno.domain.errors import NotFoundError, ValidationError
from uredno.domain.pricing.models import Extra, PriceBreakdown

CENT = Decimal("0.01")
ZERO = Decimal("0")


class PricedService(Protocol):
    base_price: Decimal | None
    price_per_sqm: Decimal | None
    min_price: Decimal | None


def to_money(value: Decimal | int | float | str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(detail=f"Invalid amount: {value}") from exc
    if not amount.is_finite():
        raise ValidationError(detail=f"Invalid amount: {value}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _base_price(service: PricedService, property_size: Decimal | None) -> Decimal:
    if property_size is not None and property_size <= 0:
        raise ValidationError(
            detail="Property size must be positive",
            errors=[{"field": "property_size"}],
        )
    if service.price_per_sqm is not None and property_size is not None:
        by_area = Decimal(service.price_per_sqm) * property_size
        floor = Decimal(service.min_price) if service.min_price is not None else ZERO
        return to_money(max(floor, by_area))
    if service.base_price is not None:
        return to_money(service.base_price)
    raise ValidationError(
        detail="Property size is required for this service",
        errors=[{"field": "property_size"}],
    )


def calculate_extras_cost(extras: Iterable[Extra]) -> Decimal:
    total = ZERO
    for index, extra in enumerate(extras):
        if extra.price < 0:
            raise ValidationError(
                detail=f"Extra price must not be negative: {extra.name}",
                errors=[{"field": f"extras[{index}].price"}],
            )
        quantity = 1 if extra.quantity is None else extra.quantity
        if quantity < 1:
            raise ValidationError(
                detail=f"Extra quantity must be at least 1: {extra.name}",
                errors=[{"field": f"extras[{index}].quantity"}],
            )
        total += to_money(extra.price) * quantity
    return to_money(total)


def calculate_price(
    service: PricedService,
    property_size: Decimal | None = None,
    extras: Iterable[Extra] | None = None,
) -> PriceBreakdown:
    size = Decimal(str(property_size)) if property_size is not None else None
    base_price = _base_price(service, size)
    extras_cost = calculate_extras_cost(extras or [])
    return PriceBreakdown(
        base_price=base_price,
        extras_cost=extras_cost,
        total_price=to_money(base_price + extras_cost),
    )


async def price_for_service(
    session: AsyncSession,
    service_id: str,
    property_size: Decimal | None = None,
    extras: Iterable[Extra] | None = None,
) -> PriceBreakdown:
    service = await catalog_service.get_active_service(session, service_id)
    if service is None:
        raise NotFoundError(detail="Service not found")
    return calculate_price(service, property_size, extras)
