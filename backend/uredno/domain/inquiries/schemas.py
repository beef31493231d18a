from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

InquiryType = Literal["general", "quote", "support"]
InquirySource = Literal["website", "whatsapp"]
InquiryStatus = Literal["new", "responded", "closed"]

INQUIRY_TYPE_LABELS = {
    "general": "Opći upit",
    "quote": "Zahtjev za ponudu",
    "support": "Podrška",
}
INQUIRY_STATUS_LABELS = {
    "new": "Novi upit",
    "responded": "Odgovoreno",
    "closed": "Zatvoreno",
}


def _strip(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return _strip(value)


class InquiryCreate(BaseModel):
    """Contact form submission. Either ``email`` or ``phone`` must be given;
    that rule is checked by the service so it is reported as one error."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=6, max_length=32)
    message: str = Field(min_length=10, max_length=2000)
    inquiry_type: InquiryType = "general"
    service_interest: Optional[str] = Field(default=None, max_length=120)
    source: InquirySource = "website"
    consent: Optional[bool] = None

    strip_text = field_validator("name", "message", mode="before")(_strip)
    strip_blank = field_validator("email", "phone", "service_interest", mode="before")(_blank_to_none)

    @field_validator("inquiry_type", mode="before")
    @classmethod
    def default_inquiry_type(cls, value: Any) -> Any:
        return _blank_to_none(value) or "general"


class InquiryReceipt(BaseModel):
    id: str
    reference_number: str
    estimated_response_time: str


class InquiryCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Vaša poruka je uspješno poslana!"
    data: InquiryReceipt


class InquiryStatusResponse(BaseModel):
    id: str
    status: InquiryStatus
    status_label: str
    submitted_at: datetime
    response_time: str | None = None


class InquiryResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    message: str
    inquiry_type: str
    status: str
    source: str
    service_interest: str | None = None
    created_at: datetime
    responded_at: datetime | None = None
    closed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class InquiryListResponse(BaseModel):
    inquiries: list[InquiryResponse]


class InquiryStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: InquiryStatus


class InquiryStats(BaseModel):
    total: int = 0
    new: int = 0
    responded: int = 0
    closed: int = 0
