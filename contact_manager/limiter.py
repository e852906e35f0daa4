"""Request rate limiting backed by Redis."""

import logging
import math

import redis.asyncio as redis
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from fastapi import HTTPException, Request, Response, status
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.exceptions import NoScriptError, RedisError

from .core import Settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, try again later."


async def rate_limit_exceeded(request: Request, response: Response, pexpire: int):
    """Reject a request that went over its rate limit."""
    expire = math.ceil(pexpire / 1000)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=RATE_LIMIT_MESSAGE,
        headers={"Retry-After": str(expire)},
    )


async def client_identifier(request: Request) -> str:
    """Rate limit key: the client address, preferring ``X-Forwarded-For``."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


class ClientRateLimiter(RateLimiter):
    """
    Rate limiter sharing one window per client across every route it guards.

    ``RateLimiter`` keys its counters by route as well; this one keys by
    the client identifier alone.
    """

    async def __call__(self, request: Request, response: Response):
        if not FastAPILimiter.redis:
            raise RuntimeError("Rate limiter is not initialized")
        identifier = self.identifier or FastAPILimiter.identifier
        callback = self.callback or FastAPILimiter.http_callback
        key = f"{FastAPILimiter.prefix}:{await identifier(request)}"
        args = (key, str(self.times), str(self.milliseconds))
        try:
            pexpire = await FastAPILimiter.redis.evalsha(FastAPILimiter.lua_sha, 1, *args)
        except NoScriptError:
            FastAPILimiter.lua_sha = await FastAPILimiter.redis.script_load(FastAPILimiter.lua_script)
            pexpire = await FastAPILimiter.redis.evalsha(FastAPILimiter.lua_sha, 1, *args)
        if pexpire != 0:
            return await callback(request, response, pexpire)


async def init_rate_limiter(settings: Settings) -> None:
    """
    Initialize the rate limiter.

    Uses the Redis server at ``REDIS_URL`` and falls back to an
    in-process fake Redis when none is configured or it is unreachable.
    """
    if settings.REDIS_URL:
        redis_client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        try:
            await FastAPILimiter.init(
                redis_client,
                identifier=client_identifier,
                http_callback=rate_limit_exceeded,
            )
            logger.info("Rate limiter using Redis")
            return
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable (%s), using in-process rate limiter", exc)
    await FastAPILimiter.init(
        FakeRedis(server=FakeServer(), decode_responses=True),
        identifier=client_identifier,
        http_callback=rate_limit_exceeded,
    )


async def close_rate_limiter() -> None:
    if FastAPILimiter.redis is not None:
        await FastAPILimiter.redis.aclose()


def build_rate_limiter(settings: Settings) -> ClientRateLimiter:
    return ClientRateLimiter(times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS)
