"""Contact inquiries from the website form and WhatsApp hand-offs.

Inquiries are independent of bookings: they never touch availability. Staff
move them from ``new`` to ``responded`` and finally ``closed``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.availability import service as availability_service
from uredno.domain.bookings.numbers import normalize_phone
from uredno.domain.errors import NotFoundError, ValidationError
from uredno.domain.inquiries.db_models import Inquiry
from uredno.domain.inquiries.schemas import INQUIRY_TYPE_LABELS, InquiryCreate, InquiryStats
from uredno.infra.metrics import metrics
from uredno.infra.store import store_call

logger = logging.getLogger(__name__)

ESTIMATED_RESPONSE_TIME = "24 sata"
INQUIRY_TRANSITIONS = {
    "new": {"responded", "closed"},
    "responded": {"closed"},
    "closed": set(),
}


def reference_number(inquiry_id: str) -> str:
    return f"INQ-{inquiry_id[:8].upper()}"


def response_time_label(created_at: datetime, responded_at: datetime | None) -> str | None:
    """Hours below a day (``"5 sati"``), whole days above (``"3 dana"``)."""
    if responded_at is None:
        return None
    if (created_at.tzinfo is None) != (responded_at.tzinfo is None):
        # SQLite hands back naive wall-clock values.
        created_at = created_at.replace(tzinfo=None)
        responded_at = responded_at.replace(tzinfo=None)
    hours = int((responded_at - created_at).total_seconds() / 3600 + 0.5)
    if hours < 24:
        return f"{hours} sati"
    return f"{int(hours / 24 + 0.5)} dana"


async def create_inquiry(
    session: AsyncSession,
    payload: InquiryCreate,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> Inquiry:
    if payload.email is None and payload.phone is None:
        raise ValidationError(
            detail="Email or phone is required",
            errors=[{"field": "email"}, {"field": "phone"}],
        )
    phone = None
    if payload.phone is not None:
        phone = normalize_phone(payload.phone)
        if phone is None:
            raise ValidationError(detail="Invalid phone number", errors=[{"field": "phone"}])

    current = now or availability_service.local_now()
    inquiry = Inquiry(
        id=str(uuid.uuid4()),
        name=payload.name,
        email=str(payload.email).lower() if payload.email is not None else None,
        phone=phone,
        message=payload.message,
        inquiry_type=payload.inquiry_type,
        status="new",
        source=payload.source,
        service_interest=payload.service_interest,
        request_metadata={
            "client_ip": client_ip,
            "user_agent": user_agent,
            "consent": payload.consent,
            "submitted_at": current.isoformat(),
        },
        created_at=current,
    )

    async def _insert() -> Inquiry:
        session.add(inquiry)
        try:
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return inquiry

    await store_call("create_inquiry", _insert, inquiry_id=inquiry.id)
    metrics.record_inquiry(inquiry.inquiry_type)
    logger.info(
        "inquiry_received",
        extra={
            "extra": {
                "inquiry_id": inquiry.id,
                "inquiry_type": inquiry.inquiry_type,
                "inquiry_label": INQUIRY_TYPE_LABELS[inquiry.inquiry_type],
                "source": inquiry.source,
                "contact": inquiry.email or inquiry.phone,
            }
        },
    )
    return inquiry


async def get_inquiry(session: AsyncSession, inquiry_id: str) -> Inquiry | None:
    async def _run() -> Inquiry | None:
        return await session.get(Inquiry, inquiry_id)

    return await store_call("get_inquiry", _run, inquiry_id=inquiry_id)


async def list_inquiries(
    session: AsyncSession,
    *,
    email: str | None = None,
    status: str | None = None,
) -> list[Inquiry]:
    """Newest first, optionally narrowed to one contact email or one status."""
    stmt = select(Inquiry).order_by(Inquiry.created_at.desc(), Inquiry.id)
    if email is not None:
        stmt = stmt.where(Inquiry.email == email.strip().lower())
    if status is not None:
        stmt = stmt.where(Inquiry.status == status)

    async def _run() -> list[Inquiry]:
        result = await session.execute(stmt)
        return list(result.scalars().all())

    return await store_call("list_inquiries", _run, status=status)


async def update_inquiry_status(
    session: AsyncSession,
    inquiry_id: str,
    status: str,
    *,
    now: datetime | None = None,
) -> Inquiry:
    inquiry = await get_inquiry(session, inquiry_id)
    if inquiry is None:
        raise NotFoundError(detail="Inquiry not found")
    previous = inquiry.status
    if status not in INQUIRY_TRANSITIONS.get(previous, set()):
        raise ValidationError(
            detail=f"Cannot change inquiry status from {previous} to {status}",
            errors=[{"field": "status", "current": previous, "target": status}],
        )
    current = now or availability_service.local_now()
    inquiry.status = status
    if status == "responded":
        inquiry.responded_at = current
    elif status == "closed":
        inquiry.closed_at = current

    async def _commit() -> Inquiry:
        try:
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        return inquiry

    await store_call("update_inquiry_status", _commit, inquiry_id=inquiry_id)
    logger.info(
        "inquiry_status_changed",
        extra={"extra": {"inquiry_id": inquiry_id, "from_status": previous, "to_status": status}},
    )
    return inquiry


async def inquiry_stats(session: AsyncSession) -> InquiryStats:
    stmt = select(Inquiry.status, func.count(Inquiry.id)).group_by(Inquiry.status)

    async def _run() -> InquiryStats:
        result = await session.execute(stmt)
        counts = {row[0]: row[1] for row in result}
        return InquiryStats(
            total=sum(counts.values()),
            new=counts.get("new", 0),
            responded=counts.get("responded", 0),
            closed=counts.get("closed", 0),
        )

    return await store_call("inquiry_stats", _run)
