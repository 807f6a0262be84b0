"""
Integration tests for the invite and access-control SQL in database.py.

Tests:
1. Command tags decide the outcome of parent writes and role changes
2. Page reads drop the empty LEFT JOIN row and clamp OFFSET/LIMIT to int8
3. Role seeding happens only on first start
4. Against a real PostgreSQL (only when TEST_DATABASE_URL is set): bind
   through DatabaseInviteStore, then read the counters and the ledger back
"""
import os
import uuid

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import database
from app.services.access import AccessControl, DatabaseRoleStore
from app.services.referrals import (
    AlreadyBoundError,
    CycleDetectedError,
    DatabaseInviteStore,
    InviteService,
    RecordEntry,
)
from tests.conftest import ALICE, BOB, CAROL, OWNER

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


def _mock_pool(conn):
    pool = MagicMock()
    acq = MagicMock()
    acq.__aenter__ = AsyncMock(return_value=conn)
    acq.__aexit__ = AsyncMock(return_value=None)
    pool.acquire.return_value = acq
    return pool


def _mock_conn():
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)

    tx_ctx = MagicMock()
    tx_ctx.__aenter__ = AsyncMock(return_value=conn)
    tx_ctx.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=tx_ctx)
    return conn


class TestInviteWrites:
    """Parent writes are decided by the upsert's command tag"""

    @pytest.mark.asyncio
    async def test_parent_saved(self):
        """INSERT 0 1 means the parent was written"""
        conn = _mock_conn()
        conn.execute = AsyncMock(return_value="INSERT 0 1")

        assert await database.set_invite_parent(conn, ALICE, BOB, 100) is True
        sql, *args = conn.execute.await_args.args
        assert "WHERE invite_users.parent IS NULL" in sql
        assert args == [ALICE, BOB, 100]

    @pytest.mark.asyncio
    async def test_parent_already_set(self):
        """INSERT 0 0 means the row already had a parent"""
        conn = _mock_conn()
        conn.execute = AsyncMock(return_value="INSERT 0 0")

        assert await database.set_invite_parent(conn, ALICE, CAROL, 100) is False

    @pytest.mark.asyncio
    async def test_unknown_counter_column(self):
        """Only first_num and second_num can be incremented"""
        conn = _mock_conn()
        with pytest.raises(ValueError):
            await database.increment_invite_counter(conn, ALICE, "bind_time")
        conn.execute.assert_not_awaited()


class TestInviteReads:
    """Single-statement reads over a mocked pool"""

    @pytest.mark.asyncio
    async def test_page_rows(self):
        """Rows come back newest-first with the total from the first row"""
        conn = _mock_conn()
        conn.fetch = AsyncMock(return_value=[
            {"total": 3, "addr": CAROL, "bind_time": 30},
            {"total": 3, "addr": ALICE, "bind_time": 20},
        ])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            total, rows = await database.get_invite_records_reversed(BOB, 0, 2)

        assert total == 3
        assert rows == [{"addr": CAROL, "bind_time": 30}, {"addr": ALICE, "bind_time": 20}]

    @pytest.mark.asyncio
    async def test_page_past_end_returns_total_only(self):
        """The LEFT JOIN row with a NULL addr carries only the total"""
        conn = _mock_conn()
        conn.fetch = AsyncMock(return_value=[{"total": 3, "addr": None, "bind_time": None}])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            total, rows = await database.get_invite_records_reversed(BOB, 10, 2)

        assert total == 3
        assert rows == []

    @pytest.mark.asyncio
    async def test_offset_and_limit_clamped_to_bigint(self):
        """Offsets beyond int8 are capped before they reach PostgreSQL"""
        conn = _mock_conn()
        conn.fetch = AsyncMock(return_value=[{"total": 3, "addr": None, "bind_time": None}])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            total, rows = await database.get_invite_records_reversed(BOB, 10 ** 19, 10 ** 30)

        assert (total, rows) == (3, [])
        _, parent, offset, limit = conn.fetch.await_args.args
        assert parent == BOB
        assert offset == database.PG_BIGINT_MAX
        assert limit == database.PG_BIGINT_MAX

    @pytest.mark.asyncio
    async def test_huge_page_through_store(self):
        """page_records with a 256-bit page number reaches SQL with an int8 offset"""
        conn = _mock_conn()
        conn.fetch = AsyncMock(return_value=[{"total": 1, "addr": None, "bind_time": None}])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            service = InviteService(DatabaseInviteStore())
            page = await service.page_records(BOB, 10 ** 78, 10)

        assert page.total == 1
        assert page.items == []
        assert conn.fetch.await_args.args[2] <= database.PG_BIGINT_MAX

    @pytest.mark.asyncio
    async def test_bind_context_resolves_grandparent(self):
        """The grandparent is the row whose identity is the candidate's parent"""
        conn = _mock_conn()
        conn.fetch = AsyncMock(return_value=[
            {"identity": BOB, "parent": ALICE, "first_num": 0, "second_num": 0, "bind_time": 5},
            {"identity": ALICE, "parent": None, "first_num": 1, "second_num": 0, "bind_time": 0},
        ])

        context = await database.get_invite_bind_context(CAROL, BOB, conn=conn)

        assert context["caller"] is None
        assert context["candidate"]["parent"] == ALICE
        assert context["grandparent"]["identity"] == ALICE


class TestAccessRoles:
    """Role rows in access_owner / access_operators"""

    @pytest.mark.asyncio
    async def test_seed_on_first_start(self):
        """First start writes the owner and every operator"""
        conn = _mock_conn()
        conn.execute = AsyncMock(return_value="INSERT 0 1")
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            seeded = await database.seed_access_roles(OWNER, [ALICE, BOB])

        assert seeded is True
        assert conn.execute.await_count == 3
        assert conn.execute.await_args_list[1].args[1] == ALICE

    @pytest.mark.asyncio
    async def test_seed_skipped_when_roles_exist(self):
        """An existing owner row, even a renounced one, blocks re-seeding"""
        conn = _mock_conn()
        conn.execute = AsyncMock(return_value="INSERT 0 0")
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            seeded = await database.seed_access_roles(OWNER, [ALICE])

        assert seeded is False
        assert conn.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_replace_owner_compare_and_set(self):
        """UPDATE 1 means the expected owner was still current"""
        conn = _mock_conn()
        conn.execute = AsyncMock(side_effect=["UPDATE 1", "UPDATE 0"])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            assert await database.replace_access_owner(OWNER, ALICE) is True
            assert await database.replace_access_owner(OWNER, BOB) is False

        sql, expected, new_owner = conn.execute.await_args_list[0].args
        assert "AND owner = $1" in sql
        assert (expected, new_owner) == (OWNER, ALICE)

    @pytest.mark.asyncio
    async def test_operator_tags(self):
        """Operator add/remove report whether anything changed"""
        conn = _mock_conn()
        conn.execute = AsyncMock(side_effect=["INSERT 0 1", "INSERT 0 0", "DELETE 1", "DELETE 0"])
        with patch("database.get_pool", new=AsyncMock(return_value=_mock_pool(conn))):
            assert await database.add_access_operator(ALICE) is True
            assert await database.add_access_operator(ALICE) is False
            assert await database.remove_access_operator(ALICE) is True
            assert await database.remove_access_operator(ALICE) is False


@pytest_asyncio.fixture
async def live_database(monkeypatch):
    """Real PostgreSQL from TEST_DATABASE_URL with the schema created"""
    monkeypatch.setattr(database, "DATABASE_URL", TEST_DATABASE_URL)
    monkeypatch.setattr(database, "_pool", None)
    await database.init_db()
    yield database
    await database.close_pool()


def _identity(name):
    return f"0x{name}-{uuid.uuid4().hex[:12]}"


@pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")
class TestLivePostgres:
    """Runs the SQL against a real PostgreSQL"""

    @pytest.mark.asyncio
    async def test_bind_and_read_back(self, live_database):
        """CAROL -> BOB -> ALICE persists counters and ledger rows"""
        alice, bob, carol = _identity("a"), _identity("b"), _identity("c")
        service = InviteService(DatabaseInviteStore(), clock=lambda: 1_700_000_000)

        await service.bind(bob, alice)
        await service.bind(carol, bob)

        record = await service.get_user(alice)
        assert (record.first_num, record.second_num) == (1, 1)
        assert (await service.get_user(carol)).parent == bob

        page = await service.page_records(alice, 1, 10)
        assert page.total == 1
        assert page.items == [RecordEntry(addr=bob, bind_time=1_700_000_000)]

    @pytest.mark.asyncio
    async def test_rejections_write_nothing(self, live_database):
        """Rebind and 2-cycle are rejected by the database-backed store"""
        alice, bob, carol = _identity("a"), _identity("b"), _identity("c")
        service = InviteService(DatabaseInviteStore(), clock=lambda: 1_700_000_000)

        await service.bind(alice, bob)
        with pytest.raises(AlreadyBoundError):
            await service.bind(alice, carol)
        with pytest.raises(CycleDetectedError):
            await service.bind(bob, alice)

        assert (await service.get_user(carol)).first_num == 0
        assert (await service.page_records(bob, 1, 10)).total == 1

    @pytest.mark.asyncio
    async def test_huge_page_number(self, live_database):
        """A page number beyond int8 returns the total and no rows"""
        alice, bob = _identity("a"), _identity("b")
        service = InviteService(DatabaseInviteStore(), clock=lambda: 1_700_000_000)
        await service.bind(bob, alice)

        page = await service.page_records(alice, 10 ** 78, 10)

        assert page.total == 1
        assert page.items == []

    @pytest.mark.asyncio
    async def test_operator_roles_persist(self, live_database):
        """Operators granted through one AccessControl are seen by a fresh one"""
        operator = _identity("op")
        store = DatabaseRoleStore()

        assert await store.add_operator(operator) is True
        assert await AccessControl(store=DatabaseRoleStore()).is_operator(operator) is True
        assert await store.remove_operator(operator) is True
        assert await store.is_operator(operator) is False
