"""Bounded execution of database calls.

Every call into the store goes through :func:`store_call`, which applies the
configured timeout and turns driver failures into ``TransientStoreError`` after
logging them with the operation name and context. Domain errors raised inside
the call pass through untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from uredno.domain.errors import DomainError, TransientStoreError
from uredno.infra.metrics import metrics
from uredno.settings import settings

logger = logging.getLogger("uredno.store")

T = TypeVar("T")


async def store_call(
    operation: str,
    call: Callable[[], Awaitable[T]],
    *,
    timeout: float | None = None,
    **context: Any,
) -> T:
    limit = timeout if timeout is not None else settings.store_call_timeout_seconds
    try:
        return await asyncio.wait_for(call(), timeout=limit)
    except DomainError:
        raise
    except asyncio.TimeoutError as exc:
        metrics.record_store_error(operation)
        logger.warning(
            "store_call_timeout",
            extra={"extra": {"operation": operation, "timeout_seconds": limit, **context}},
        )
        raise TransientStoreError(
            detail=f"Store call timed out: {operation}", operation=operation
        ) from exc
    except SQLAlchemyError as exc:
        metrics.record_store_error(operation)
        logger.error(
            "store_call_failed",
            extra={
                "extra": {
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    **context,
                }
            },
        )
        raise TransientStoreError(detail=f"Store call failed: {operation}", operation=operation) from exc
