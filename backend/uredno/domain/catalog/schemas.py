from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class ServiceResponse(BaseModel):
    id: str
    name: str
    slug: str
    category: str
    base_price: Decimal | None = None
    price_per_sqm: Decimal | None = None
    min_price: Decimal | None = None
    duration_hours: Decimal
    description: str | None = None
    features: list[str] = Field(default_factory=list)
    popular: bool = False
    display_order: int = 0

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("base_price", "price_per_sqm", "min_price", "duration_hours")
    def _serialize_decimal(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None


class ServiceListResponse(BaseModel):
    services: list[ServiceResponse]
