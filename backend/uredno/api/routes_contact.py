import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.errors import NotFoundError, RateLimitedError
from uredno.domain.inquiries import schemas as inquiry_schemas
from uredno.domain.inquiries import service as inquiry_service
from uredno.infra.db import get_db_session
from uredno.infra.metrics import metrics
from uredno.infra.rate_limit import resolve_client_key

router = APIRouter(prefix="/api/contact")
logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    return resolve_client_key(request, trust_proxy_headers=request.app.state.app_settings.trust_proxy_headers)


async def limit_contact_submissions(request: Request) -> None:
    """Contact submissions get a tighter per-client budget than the API as a whole."""
    limiter = request.app.state.services.contact_rate_limiter
    if await limiter.allow(_client_ip(request)):
        return
    metrics.record_rate_limit_block()
    logger.warning(
        "contact_rate_limit_blocked",
        extra={
            "extra": {
                "request_id": getattr(request.state, "request_id", None),
                "limit_per_minute": request.app.state.app_settings.contact_rate_limit_per_minute,
            }
        },
    )
    raise RateLimitedError(detail="Too many contact requests, try again in a minute")


@router.post(
    "",
    response_model=inquiry_schemas.InquiryCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_contact_submissions)],
)
async def submit_inquiry(
    payload: inquiry_schemas.InquiryCreate,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> inquiry_schemas.InquiryCreatedResponse:
    inquiry = await inquiry_service.create_inquiry(
        session,
        payload,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return inquiry_schemas.InquiryCreatedResponse(
        data=inquiry_schemas.InquiryReceipt(
            id=inquiry.id,
            reference_number=inquiry_service.reference_number(inquiry.id),
            estimated_response_time=inquiry_service.ESTIMATED_RESPONSE_TIME,
        )
    )


@router.get("/status/{inquiry_id}", response_model=inquiry_schemas.InquiryStatusResponse)
async def inquiry_status(
    inquiry_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> inquiry_schemas.InquiryStatusResponse:
    inquiry = await inquiry_service.get_inquiry(session, inquiry_id.strip())
    if inquiry is None:
        raise NotFoundError(detail="Inquiry not found")
    return inquiry_schemas.InquiryStatusResponse(
        id=inquiry.id,
        status=inquiry.status,
        status_label=inquiry_schemas.INQUIRY_STATUS_LABELS[inquiry.status],
        submitted_at=inquiry.created_at,
        response_time=inquiry_service.response_time_label(inquiry.created_at, inquiry.responded_at),
    )
