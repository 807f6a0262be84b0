"""
Invite stores: the shared keyed state behind the Registry and the Ledger.

Two tables:
- users:   identity -> UserRecord
- records: parent identity -> append-only list of RecordEntry

Writes happen inside store.transaction(): either every staged write commits or
none does. Reads outside a transaction fetch what they need in one call, so a
reader sees either the pre-bind or the post-bind state, never a mix.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Dict, List, Optional, Tuple

import database
from app.services.referrals.exceptions import AlreadyBoundError
from app.services.referrals.models import (
    BindContext,
    RecordEntry,
    UserRecord,
    ZERO_ADDRESS,
)
from app.utils.safe_math import checked_add

logger = logging.getLogger(__name__)


# ====================================================================================
# Interfaces
# ====================================================================================

class InviteTransaction:
    """Write handle for a single bind. Obtained from InviteStore.transaction()."""

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        raise NotImplementedError

    async def set_parent(self, child: str, parent: str, bind_time: int) -> None:
        """Set parent once. Raises AlreadyBoundError if child already has one."""
        raise NotImplementedError

    async def increment_first_num(self, identity: str) -> None:
        raise NotImplementedError

    async def increment_second_num(self, identity: str) -> None:
        raise NotImplementedError

    async def append_record(self, parent: str, entry: RecordEntry) -> None:
        raise NotImplementedError


class InviteStore:
    """Storage interface used by the Registry and the Ledger."""

    def transaction(self):
        """Async context manager yielding an InviteTransaction."""
        raise NotImplementedError

    async def get_user(self, identity: str) -> UserRecord:
        raise NotImplementedError

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        raise NotImplementedError

    async def get_records_reversed(
        self,
        parent: str,
        offset: int,
        limit: int,
    ) -> Tuple[int, List[RecordEntry]]:
        """
        Return (total, entries): the parent's records in reverse insertion
        order, skipping the `offset` most recent and returning at most `limit`.
        """
        raise NotImplementedError


# ====================================================================================
# In-memory store
# ====================================================================================

class InMemoryInviteStore(InviteStore):
    """
    Process-local store. Not durable; for tests and local runs.

    Reads and the commit step never await, so under asyncio each of them is
    atomic with respect to other coroutines.
    """

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._records: Dict[str, List[RecordEntry]] = {}

    def _user(self, identity: str) -> UserRecord:
        return self._users.get(identity) or UserRecord()

    def _context(self, lookup, caller: str, candidate: str) -> BindContext:
        candidate_record = lookup(candidate)
        if candidate_record.is_bound:
            grandparent_record = lookup(candidate_record.parent)
        else:
            grandparent_record = UserRecord()
        return BindContext(
            caller=lookup(caller),
            candidate=candidate_record,
            grandparent=grandparent_record,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_MemoryTransaction"]:
        tx = _MemoryTransaction(self)
        yield tx
        # Only reached when the block raised nothing
        tx.commit()

    async def get_user(self, identity: str) -> UserRecord:
        return self._user(identity)

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        return self._context(self._user, caller, candidate)

    async def get_records_reversed(
        self,
        parent: str,
        offset: int,
        limit: int,
    ) -> Tuple[int, List[RecordEntry]]:
        entries = self._records.get(parent, [])
        total = len(entries)
        if limit <= 0 or offset >= total:
            return total, []
        stop = total - offset
        start = max(stop - limit, 0)
        return total, list(reversed(entries[start:stop]))


class _MemoryTransaction(InviteTransaction):
    """Stages writes in an overlay; commit() applies them in one step."""

    def __init__(self, store: InMemoryInviteStore):
        self._store = store
        self._users: Dict[str, UserRecord] = {}
        self._appends: List[Tuple[str, RecordEntry]] = []

    def _user(self, identity: str) -> UserRecord:
        return self._users.get(identity) or self._store._user(identity)

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        return self._store._context(self._user, caller, candidate)

    async def set_parent(self, child: str, parent: str, bind_time: int) -> None:
        record = self._user(child)
        if record.is_bound:
            raise AlreadyBoundError(f"{child} is already bound to {record.parent}")
        self._users[child] = replace(record, parent=parent, bind_time=bind_time)

    async def increment_first_num(self, identity: str) -> None:
        record = self._user(identity)
        self._users[identity] = replace(record, first_num=checked_add(record.first_num, 1))

    async def increment_second_num(self, identity: str) -> None:
        record = self._user(identity)
        self._users[identity] = replace(record, second_num=checked_add(record.second_num, 1))

    async def append_record(self, parent: str, entry: RecordEntry) -> None:
        self._appends.append((parent, entry))

    def commit(self) -> None:
        self._store._users.update(self._users)
        for parent, entry in self._appends:
            self._store._records.setdefault(parent, []).append(entry)


# ====================================================================================
# PostgreSQL store
# ====================================================================================

class DatabaseInviteStore(InviteStore):
    """PostgreSQL-backed store. Delegates to the database module (asyncpg pool)."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_DatabaseTransaction"]:
        async with database.invite_transaction() as conn:
            yield _DatabaseTransaction(conn)

    async def get_user(self, identity: str) -> UserRecord:
        row = await database.get_invite_user(identity)
        return _record_from_row(row)

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        rows = await database.get_invite_bind_context(caller, candidate)
        return _context_from_rows(rows)

    async def get_records_reversed(
        self,
        parent: str,
        offset: int,
        limit: int,
    ) -> Tuple[int, List[RecordEntry]]:
        total, rows = await database.get_invite_records_reversed(parent, offset, limit)
        return total, [RecordEntry(addr=row["addr"], bind_time=int(row["bind_time"])) for row in rows]


class _DatabaseTransaction(InviteTransaction):

    def __init__(self, conn):
        self._conn = conn

    async def get_bind_context(self, caller: str, candidate: str) -> BindContext:
        rows = await database.get_invite_bind_context(caller, candidate, conn=self._conn)
        return _context_from_rows(rows)

    async def set_parent(self, child: str, parent: str, bind_time: int) -> None:
        saved = await database.set_invite_parent(self._conn, child, parent, bind_time)
        if not saved:
            raise AlreadyBoundError(f"{child} is already bound")

    async def increment_first_num(self, identity: str) -> None:
        await database.increment_invite_counter(self._conn, identity, "first_num")

    async def increment_second_num(self, identity: str) -> None:
        await database.increment_invite_counter(self._conn, identity, "second_num")

    async def append_record(self, parent: str, entry: RecordEntry) -> None:
        await database.append_invite_record(self._conn, parent, entry.addr, entry.bind_time)


def _record_from_row(row: Optional[dict]) -> UserRecord:
    """Missing rows read as zero-valued records"""
    if not row:
        return UserRecord()
    return UserRecord(
        parent=row.get("parent") or ZERO_ADDRESS,
        first_num=database.safe_int(row.get("first_num")),
        second_num=database.safe_int(row.get("second_num")),
        bind_time=database.safe_int(row.get("bind_time")),
    )


def _context_from_rows(rows: Dict[str, Optional[dict]]) -> BindContext:
    return BindContext(
        caller=_record_from_row(rows.get("caller")),
        candidate=_record_from_row(rows.get("candidate")),
        grandparent=_record_from_row(rows.get("grandparent")),
    )
