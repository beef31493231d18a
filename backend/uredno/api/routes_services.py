from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uredno.domain.catalog import schemas as catalog_schemas
from uredno.domain.catalog import service as catalog_service
from uredno.domain.errors import NotFoundError
from uredno.domain.pricing import calculator
from uredno.domain.pricing.models import PriceBreakdown, PriceRequest
from uredno.infra.db import get_db_session

router = APIRouter()


@router.get("/api/services", response_model=catalog_schemas.ServiceListResponse)
async def list_services(
    category: str | None = Query(default=None),
    popular: bool = Query(default=False),
    q: str | None = Query(default=None, max_length=100),
    session: AsyncSession = Depends(get_db_session),
) -> catalog_schemas.ServiceListResponse:
    if popular:
        services = await catalog_service.list_popular_services(session)
    elif category:
        services = await catalog_service.list_services_by_category(session, category)
    elif q:
        services = await catalog_service.search_services(session, q)
    else:
        services = await catalog_service.list_services(session)
    return catalog_schemas.ServiceListResponse(
        services=[catalog_schemas.ServiceResponse.model_validate(service) for service in services]
    )


@router.get("/api/services/{slug}", response_model=catalog_schemas.ServiceResponse)
async def get_service(
    slug: str,
    session: AsyncSession = Depends(get_db_session),
) -> catalog_schemas.ServiceResponse:
    service = await catalog_service.get_service_by_slug(session, slug)
    if service is None:
        raise NotFoundError(detail="Service not found")
    return catalog_schemas.ServiceResponse.model_validate(service)


@router.post("/api/price", response_model=PriceBreakdown)
async def calculate_price(
    payload: PriceRequest,
    session: AsyncSession = Depends(get_db_session),
) -> PriceBreakdown:
    return await calculator.price_for_service(
        session,
        payload.service_id,
        payload.property_size,
        payload.extras,
    )
