"""Process-wide Redis connection behind the sheet cache and server state.

A short socket timeout keeps request handlers from hanging when Redis is down;
the cache store then degrades to misses.
"""

import logging
from typing import Optional

import redis as redis_lib

from vocab_tracker.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis_lib.Redis] = None


def init_redis_client() -> redis_lib.Redis:
    global _client
    _client = redis_lib.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        socket_connect_timeout=settings.redis_timeout_seconds,
        socket_timeout=settings.redis_timeout_seconds,
        decode_responses=True,
    )
    logger.info(f"Redis client for cache at {settings.redis_host}:{settings.redis_port}/{settings.redis_db}")
    return _client


def get_redis_client() -> redis_lib.Redis:
    """The client set up by the app lifespan; RuntimeError before startup."""
    if _client is None:
        raise RuntimeError("Redis client not initialized.")
    return _client


def close_redis_client() -> None:
    global _client
    if _client is None:
        return
    _client.close()
    _client = None
    logger.info("Redis client closed")


def check_connection() -> bool:
    """Ping Redis for the health endpoint."""
    if _client is None:
        return False
    try:
        return bool(_client.ping())
    except redis_lib.RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
