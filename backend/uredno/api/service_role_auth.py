"""Guard for privileged endpoints.

Admin routes require ``Authorization: Bearer <STORE_SERVICE_ROLE_KEY>``. When
the key is not configured the routes fail with 503 rather than opening up.
"""

import logging
import secrets

from fastapi import Request

from uredno.domain.errors import DomainError, StoreConfigurationError

logger = logging.getLogger(__name__)

MISSING_KEY_DETAIL = "Missing STORE_SERVICE_ROLE_KEY - required for admin operations"


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


async def require_service_role(request: Request) -> str:
    app_settings = request.app.state.app_settings
    expected = app_settings.store_service_role_key
    if not expected or not expected.strip():
        logger.error("service_role_key_missing", extra={"extra": {"path": request.url.path}})
        raise StoreConfigurationError(detail=MISSING_KEY_DETAIL)

    provided = _bearer_token(request)
    if provided is None or not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning("service_role_auth_failed", extra={"extra": {"path": request.url.path}})
        raise DomainError(
            detail="Unauthorized",
            title="Unauthorized",
            status_code=401,
        )
    return "service_role"
