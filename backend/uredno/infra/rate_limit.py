import asyncio
import logging
import time
from collections import defaultdict, deque
from ipaddress import ip_address
from typing import Deque, Dict, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError
from starlette.requests import Request

logger = logging.getLogger("uredno.rate_limit")

_MAX_FORWARDED_HOPS = 20


class RateLimiter(Protocol):
    async def allow(self, key: str) -> bool: ...

    async def reset(self) -> None: ...

    async def close(self) -> None: ...


class InMemoryRateLimiter:
    """Sliding one-minute window per client key, local to the process."""

    def __init__(self, requests_per_minute: int, cleanup_minutes: int = 10) -> None:
        self.requests_per_minute = requests_per_minute
        self.cleanup_minutes = cleanup_minutes
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_prune: float = 0.0
        self._lock = asyncio.Lock()

    async def allow(self, key: str) -> bool:
        async with self._lock:
            now = time.monotonic()
            self._maybe_prune(now)
            timestamps = self._requests[key]
            while timestamps and timestamps[0] < now - 60:
                timestamps.popleft()
            if len(timestamps) >= self.requests_per_minute:
                return False
            timestamps.append(now)
            return True

    async def reset(self) -> None:
        self._requests.clear()
        self._last_prune = 0.0

    async def close(self) -> None:
        return None

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune < 60:
            return
        expire_before = now - (self.cleanup_minutes * 60)
        for key in list(self._requests.keys()):
            timestamps = self._requests[key]
            if not timestamps or timestamps[-1] < expire_before:
                self._requests.pop(key, None)
        self._last_prune = now


class RedisRateLimiter:
    """Fixed one-minute window shared between processes.

    While Redis is unreachable the limiter fails open to a process-local
    window and probes Redis again every ``health_probe_seconds``.
    """

    def __init__(
        self,
        redis_url: str,
        requests_per_minute: int,
        *,
        redis_client: redis.Redis | None = None,
        fail_open_seconds: int = 300,
        health_probe_seconds: float = 5.0,
        cleanup_minutes: int = 10,
        key_prefix: str = "rate-limit",
    ) -> None:
        self.requests_per_minute = requests_per_minute
        self.key_prefix = key_prefix
        self.redis = redis_client or redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        self.fail_open_seconds = max(1, fail_open_seconds)
        self.health_probe_seconds = max(0.5, health_probe_seconds)
        self._fallback = InMemoryRateLimiter(requests_per_minute, cleanup_minutes=cleanup_minutes)
        self._fail_open_until: float = 0.0
        self._last_probe: float = 0.0

    async def allow(self, key: str) -> bool:
        now = time.monotonic()
        if self._fail_open_until > now:
            return await self._allow_with_fail_open(key, now)
        window = int(time.time() // 60)
        redis_key = f"{self.key_prefix}:{key}:{window}"
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, 120)
                count, _ = await pipe.execute()
        except RedisError:
            self._fail_open_until = now + self.fail_open_seconds
            self._last_probe = now
            logger.warning("redis rate limiter unavailable; using in-memory fallback")
            return await self._fallback.allow(key)
        return int(count) <= self.requests_per_minute

    async def reset(self) -> None:
        await self._fallback.reset()
        try:
            async for redis_key in self.redis.scan_iter(match=f"{self.key_prefix}:*"):
                await self.redis.delete(redis_key)
        except RedisError:
            logger.warning("redis rate limiter reset failed")

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except RedisError:
            logger.warning("redis rate limiter close failed")

    async def _allow_with_fail_open(self, key: str, now: float) -> bool:
        if now - self._last_probe >= self.health_probe_seconds:
            self._last_probe = now
            try:
                await self.redis.ping()
            except RedisError:
                logger.debug("redis rate limiter still unavailable; continuing fallback")
            else:
                self._fail_open_until = 0.0
                await self._fallback.reset()
                logger.info("redis rate limiter recovered; resuming primary")
                return await self.allow(key)
        return await self._fallback.allow(key)


def create_rate_limiter(
    app_settings,
    *,
    requests_per_minute: int | None = None,
    key_prefix: str = "rate-limit",
) -> RateLimiter:
    limit = requests_per_minute if requests_per_minute is not None else app_settings.rate_limit_per_minute
    if getattr(app_settings, "redis_url", None):
        return RedisRateLimiter(
            app_settings.redis_url,
            limit,
            fail_open_seconds=app_settings.rate_limit_fail_open_seconds,
            health_probe_seconds=app_settings.rate_limit_redis_probe_seconds,
            cleanup_minutes=app_settings.rate_limit_cleanup_minutes,
            key_prefix=key_prefix,
        )
    return InMemoryRateLimiter(
        limit,
        cleanup_minutes=app_settings.rate_limit_cleanup_minutes,
    )


def resolve_client_key(request: Request, trust_proxy_headers: bool) -> str:
    source_ip = request.client.host if request.client else "unknown"
    if not trust_proxy_headers:
        return source_ip
    for header in ("x-forwarded-for", "x-real-ip"):
        value = request.headers.get(header)
        if not value:
            continue
        hops = [hop.strip() for hop in value.split(",")]
        if len(hops) > _MAX_FORWARDED_HOPS:
            continue
        try:
            ip_address(hops[0])
        except ValueError:
            continue
        return hops[0]
    return source_ip
