from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class Extra(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=120)
    price: Decimal
    quantity: Optional[int] = None


class PriceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    service_id: str = Field(min_length=1)
    property_size: Optional[Decimal] = None
    extras: List[Extra] = Field(default_factory=list)


class PriceBreakdown(BaseModel):
    base_price: Decimal
    extras_cost: Decimal
    total_price: Decimal

    @field_serializer("base_price", "extras_cost", "total_price")
    def _serialize_money(self, value: Decimal) -> float:
        return float(value)
