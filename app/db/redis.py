"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a connection pool is
created at import time; when it is None (local dev, tests) redis_pool is
None and the enrollment-summary cache falls back to an in-memory dict.

Redis only ever holds derived, disposable data here (cached enrollment
summaries).  PostgreSQL remains the source of truth for progress.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis — mirrors lifespan_db().

    Verifies the connection on startup and closes the pool on shutdown.
    An unreachable Redis is logged and tolerated; cache calls will fail
    open (see app/services/cache.py).
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured — summary cache is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
