"""
Redis Client Module

Async Redis client (redis.asyncio), created once per process.
Used for the cross-instance bind lock and the invite events channel.
Redis is optional: without REDIS_URL the service runs single-instance.
"""
import logging
from typing import Optional
import redis.asyncio as redis
import config
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
REDIS_READY: bool = False


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client.

    Returns:
        Redis client if REDIS_URL is configured, None otherwise

    Raises:
        RuntimeError: If the client cannot be created from REDIS_URL
    """
    global _redis_client

    if not config.REDIS_URL:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                config.REDIS_URL,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=10
            )
            logger.info("Redis client created")
        except Exception as e:
            logger.error(f"Failed to create Redis client: {e}")
            _redis_client = None
            raise RuntimeError(f"Redis client creation failed: {e}") from e

    return _redis_client


async def check_redis_connection() -> bool:
    """
    PING Redis (with retries on transient errors).

    Returns:
        True if Redis answered, False otherwise. Never raises.
    """
    global REDIS_READY

    client = get_redis_client()
    if client is None:
        REDIS_READY = False
        return False

    try:
        REDIS_READY = bool(await retry_async(client.ping, retries=2))
    except Exception as e:
        REDIS_READY = False
        logger.warning(
            "REDIS_CONNECTION_FAILED",
            extra={
                "component": "infra",
                "operation": "redis_health_check",
                "outcome": "failed",
                "reason": str(e)[:100]
            }
        )
        return False

    if REDIS_READY:
        logger.info(
            "REDIS_CONNECTED",
            extra={
                "component": "infra",
                "operation": "redis_health_check",
                "outcome": "success"
            }
        )
    return REDIS_READY


async def close_redis_client():
    """Close the Redis connection pool. Idempotent."""
    global _redis_client, REDIS_READY

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Redis client closed")
        except Exception as e:
            logger.error(f"Error closing Redis client: {e}")
        finally:
            _redis_client = None
            REDIS_READY = False
