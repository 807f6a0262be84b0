"""
Invite Service - Single-Parent Referral Tracking

Facade over the Referral Registry and the Record Ledger.

- bind() is the only mutating operation. Every bind runs under one writer
  lock (asyncio.Lock, plus a Redis lock when several instances share a
  database) and commits registry and ledger writes in one store transaction.
- get_user(), check_bind() and page_records() never take the writer lock and
  never mutate.
- One invite_bound event per successful bind goes to the notification sink
  after commit (best-effort).

No HTTP or Telegram types here - pure business logic.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from app.core.events import EventBuilder
from app.core.redis_lock import BIND_LOCK_KEY, RedisDistributedLock
from app.core.structured_logger import log_event
from app.services.notifications.service import EventSink, dispatch_event
from app.services.referrals.exceptions import BindLockTimeoutError, InviteServiceError
from app.services.referrals.ledger import RecordLedger
from app.services.referrals.models import BindResult, RecordEntry, RecordPage, UserRecord
from app.services.referrals.registry import ReferralRegistry
from app.services.referrals.store import InviteStore

logger = logging.getLogger(__name__)


def unix_now() -> int:
    return int(time.time())


class InviteService:
    """
    Referral registry + record ledger behind a single writer lock.

    Args:
        store: Shared keyed store for both tables
        sink: Notification sink (None disables notifications)
        redis_client: When set, binds also hold a Redis lock across instances
        clock: Returns the bind timestamp (unix seconds)
        lock_ttl_seconds: TTL of the Redis lock
        lock_wait_seconds: How long a bind waits for the Redis lock
    """

    def __init__(
        self,
        store: InviteStore,
        sink: Optional[EventSink] = None,
        redis_client=None,
        clock: Callable[[], int] = unix_now,
        lock_ttl_seconds: int = 10,
        lock_wait_seconds: float = 5,
    ):
        self.store = store
        self.sink = sink
        self.redis_client = redis_client
        self.clock = clock
        self.lock_ttl_seconds = lock_ttl_seconds
        self.lock_wait_seconds = lock_wait_seconds
        self.registry = ReferralRegistry(store)
        self.ledger = RecordLedger(store)
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user(self, identity: str) -> UserRecord:
        """(parent, first_num, second_num, bind_time); zero-valued if never seen"""
        return await self.registry.get_user(identity)

    async def check_bind(self, caller: str, candidate_parent: str) -> bool:
        """True exactly when bind(caller, candidate_parent) would succeed now"""
        return await self.registry.check_bind(caller, candidate_parent)

    async def page_records(self, parent: str, page_number: int, page_size: int) -> RecordPage:
        """Newest-first page of binds under `parent`. Raises InvalidPageError."""
        return await self.ledger.page(parent, page_number, page_size)

    # ------------------------------------------------------------------
    # Bind
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _writer(self, correlation_id: str):
        async with self._write_lock:
            if self.redis_client is None:
                yield
                return

            lock = RedisDistributedLock(
                self.redis_client,
                key=BIND_LOCK_KEY,
                ttl_seconds=self.lock_ttl_seconds,
                wait_timeout=self.lock_wait_seconds,
            )
            if not await lock.acquire(correlation_id=correlation_id):
                raise BindLockTimeoutError(
                    f"bind lock not acquired within {self.lock_wait_seconds}s"
                )
            try:
                yield
            finally:
                await lock.release(correlation_id=correlation_id)

    async def bind(self, caller: str, parent: str, correlation_id: Optional[str] = None) -> BindResult:
        """
        Bind `caller` to `parent` (once per caller, forever).

        Raises:
            InvalidIdentityError: parent (or caller) is the none identity
            SelfReferenceError: caller == parent
            AlreadyBoundError: caller already has a parent
            CycleDetectedError: caller is parent's parent or grandparent
            BindLockTimeoutError: writer lock unavailable (nothing written)
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        started = time.monotonic()

        try:
            async with self._writer(correlation_id):
                bind_time = self.clock()
                async with self.store.transaction() as tx:
                    result = await self.registry.bind(tx, caller, parent, bind_time)
                    await self.ledger.append(
                        tx,
                        result.parent,
                        RecordEntry(addr=result.child, bind_time=bind_time),
                    )
        except InviteServiceError as e:
            logger.info(
                f"INVITE_BIND_REJECTED [caller={caller}, parent={parent}, reason={e.code}]"
            )
            log_event(
                logger,
                component="invites",
                operation="bind",
                correlation_id=correlation_id,
                outcome="rejected",
                reason=e.code,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            raise

        logger.info(
            f"INVITE_BOUND [child={result.child}, parent={result.parent}, "
            f"grandparent={result.grandparent}, bind_time={result.bind_time}]"
        )
        log_event(
            logger,
            component="invites",
            operation="bind",
            correlation_id=correlation_id,
            outcome="success",
            duration_ms=int((time.monotonic() - started) * 1000),
        )

        await dispatch_event(
            self.sink,
            EventBuilder.invite_bound(
                child=result.child,
                parent=result.parent,
                bind_time=result.bind_time,
                correlation_id=correlation_id,
            ),
        )
        return result
