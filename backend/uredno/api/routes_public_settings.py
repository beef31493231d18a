from fastapi import APIRouter, Request
from pydantic import BaseModel

from uredno.domain.availability.slots import TIME_SLOTS

router = APIRouter()


class PublicConfigResponse(BaseModel):
    store_url: str | None = None
    store_anon_key: str | None = None
    public_base_url: str | None = None
    timezone: str
    time_slots: list[str]
    team_count: int
    availability_horizon_days: int


@router.get("/api/config", response_model=PublicConfigResponse)
async def public_config(request: Request) -> PublicConfigResponse:
    """Client bootstrap values. Never includes the service-role key."""
    app_settings = request.app.state.app_settings
    return PublicConfigResponse(
        store_url=app_settings.store_url,
        store_anon_key=app_settings.store_anon_key,
        public_base_url=app_settings.public_base_url,
        timezone=app_settings.timezone,
        time_slots=list(TIME_SLOTS),
        team_count=app_settings.team_count,
        availability_horizon_days=app_settings.availability_horizon_days,
    )
