# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client used to coordinate scheduled jobs across
API workers. Redis is optional: without it every worker runs its own jobs,
which is safe because each job is idempotent per record.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from orah.config import get_settings
from orah.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.close()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    """Get Redis client instance."""
    return _redis_client


def job_lock_name(job: str) -> str:
    """Get the single-runner lock key for a scheduled job."""
    return f"jobs:lock:{job}"


@asynccontextmanager
async def job_lock(
    client: redis.Redis | None, job: str, timeout: int
) -> AsyncIterator[bool]:
    """Try to take the single-runner lock for a job without blocking.

    Yields True when this worker should run the job. Without a Redis client
    (or when Redis fails) the lock is skipped and the job runs locally.
    """
    if client is None:
        yield True
        return

    lock = client.lock(job_lock_name(job), timeout=timeout, blocking=False)
    try:
        acquired = await lock.acquire()
    except RedisError as e:
        logger.warning("job_lock_unavailable", job=job, error=str(e))
        acquired = None

    if acquired is None:
        yield True
        return

    if not acquired:
        logger.info("job_lock_held_elsewhere", job=job)
        yield False
        return

    try:
        yield True
    finally:
        try:
            await lock.release()
        except (LockError, RedisError) as e:
            logger.warning("job_lock_release_failed", job=job, error=str(e))
