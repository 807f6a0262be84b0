"""
Redis Distributed Lock Module

Cross-instance writer lock using the Redis SET NX PX pattern.
Several service instances sharing one database serialize their binds through
it; the in-process asyncio.Lock only covers a single instance.

INFRASTRUCTURE ONLY - No invite logic here.
"""
import logging
import uuid
import asyncio
import os
from typing import Optional
import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Key guarding every bind (Registry + Ledger are one critical section)
BIND_LOCK_KEY = "lock:invite:bind"

# Atomic compare-and-delete: only the token holder may release
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisDistributedLock:
    """
    Redis distributed lock with token-based release.

    The TTL bounds how long a crashed holder can block others.

    Example:
        lock = RedisDistributedLock(redis_client, BIND_LOCK_KEY, ttl_seconds=10, wait_timeout=5)
        async with lock:
            # Critical section
            pass
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = BIND_LOCK_KEY,
        ttl_seconds: int = 10,
        wait_timeout: float = 5,
        retry_interval: float = 0.05,
    ):
        """
        Args:
            redis_client: Redis client instance (must be connected)
            key: Redis key for the lock
            ttl_seconds: Lock TTL in seconds (auto-release after this time)
            wait_timeout: Maximum time to wait for acquisition (seconds)
            retry_interval: Delay between acquisition attempts (seconds)
        """
        self.redis_client = redis_client
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.wait_timeout = wait_timeout
        self.retry_interval = retry_interval
        self.token: Optional[str] = None
        self.acquired = False
        self.instance_id = os.getenv("INSTANCE_ID", f"pid-{os.getpid()}")

    async def acquire(self, correlation_id: Optional[str] = None) -> bool:
        """
        Try to acquire the lock until wait_timeout elapses.

        Returns:
            True if lock acquired, False on timeout
        """
        if self.acquired:
            logger.warning(
                "REDIS_LOCK_ERROR",
                extra={
                    "component": "infra",
                    "operation": "lock_acquire",
                    "outcome": "failed",
                    "reason": "lock_already_acquired",
                    "key": self.key,
                    "correlation_id": correlation_id,
                }
            )
            return False

        token = str(uuid.uuid4())
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        attempt = 0

        while True:
            attempt += 1
            acquired = await self.redis_client.set(
                self.key,
                token,
                nx=True,
                px=int(self.ttl_seconds * 1000),
            )
            if acquired:
                self.token = token
                self.acquired = True
                logger.debug(
                    "REDIS_LOCK_ACQUIRED key=%s attempts=%s instance_id=%s",
                    self.key, attempt, self.instance_id,
                )
                return True

            elapsed = loop.time() - start_time
            if elapsed >= self.wait_timeout:
                logger.warning(
                    "REDIS_LOCK_TIMEOUT",
                    extra={
                        "component": "infra",
                        "operation": "lock_acquire",
                        "outcome": "timeout",
                        "key": self.key,
                        "attempts": attempt,
                        "elapsed_seconds": round(elapsed, 2),
                        "correlation_id": correlation_id,
                        "instance_id": self.instance_id,
                    }
                )
                return False

            await asyncio.sleep(self.retry_interval)

    async def release(self, correlation_id: Optional[str] = None) -> None:
        """
        Release the lock if we still hold it. Safe to call multiple times.
        """
        if not self.acquired:
            return

        try:
            result = await self.redis_client.eval(RELEASE_SCRIPT, 1, self.key, self.token)
            if not result:
                # TTL expired while held, or someone else owns the key now
                logger.warning(
                    "REDIS_LOCK_ERROR",
                    extra={
                        "component": "infra",
                        "operation": "lock_release",
                        "outcome": "failed",
                        "reason": "token_mismatch_or_expired",
                        "key": self.key,
                        "correlation_id": correlation_id,
                        "instance_id": self.instance_id,
                    }
                )
        except Exception as e:
            logger.error(
                "REDIS_LOCK_ERROR",
                extra={
                    "component": "infra",
                    "operation": "lock_release",
                    "outcome": "error",
                    "reason": str(e)[:100],
                    "key": self.key,
                    "correlation_id": correlation_id,
                    "instance_id": self.instance_id,
                }
            )
        finally:
            self.acquired = False
            self.token = None

    async def __aenter__(self):
        if not await self.acquire():
            raise TimeoutError(f"Failed to acquire Redis lock: {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
        return False
