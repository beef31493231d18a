import logging
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import TimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from uredno.settings import settings

Base = declarative_base()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

logger = logging.getLogger(__name__)


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith(("postgresql://", "postgresql+"))


def _engine_kwargs(database_url: str) -> dict[str, Any]:
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if not _is_postgres(database_url):
        return engine_kwargs

    engine_kwargs.update(
        {
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_timeout": settings.database_pool_timeout_seconds,
        }
    )
    timeout_ms = int(settings.database_statement_timeout_ms)
    if database_url.startswith("postgresql+asyncpg"):
        engine_kwargs["connect_args"] = {"server_settings": {"statement_timeout": str(timeout_ms)}}
    else:
        engine_kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
    return engine_kwargs


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
        _configure_logging(_engine)
        _instrument(_engine)
        _session_factory = async_sessionmaker(
            _engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )
    return _session_factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return _get_session_factory()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    session_factory = _get_session_factory()
    try:
        async with session_factory() as session:
            yield session
    except TimeoutError as exc:
        logger.warning("db_pool_timeout", exc_info=exc)
        raise


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def _configure_logging(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "handle_error")
    def receive_error(context):  # noqa: ANN001
        exc = context.original_exception or context.sqlalchemy_exception
        if isinstance(exc, TimeoutError):
            logger.warning(
                "db_pool_timeout",
                extra={"extra": {"operation": str(context.statement) if context.statement else None}},
            )


def _instrument(engine: AsyncEngine) -> None:
    from uredno.infra.tracing import instrument_sqlalchemy

    instrument_sqlalchemy(engine.sync_engine)
