import asyncpg
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
import logging
import config
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)

# ====================================================================================
# SAFE STARTUP GUARD: database readiness flag
# ====================================================================================
# Reflects whether the pool is up and the invite tables exist.
# ====================================================================================
DB_READY: bool = False

DATABASE_URL = config.DATABASE_URL

# Transaction-scoped advisory lock serializing every bind across connections
INVITE_BIND_LOCK_ID = 7_400_001

# OFFSET and LIMIT are int8 parameters
PG_BIGINT_MAX = 2 ** 63 - 1

# Counters that may be incremented through increment_invite_counter()
_COUNTER_COLUMNS = ("first_num", "second_num")


# ====================================================================================
# SAFE DATA HELPERS
# ====================================================================================

def safe_int(value: Any) -> int:
    """
    Convert a DB value to int, mapping None to 0.

    Args:
        value: None, int, str or Decimal

    Returns:
        int: Converted value, or 0 if None or unconvertible
    """
    if value is None:
        return 0
    try:
        return int(value)
    except (ValueError, TypeError):
        return 0


# ====================================================================================
# DB POOL CONFIG: ENV-overridable, single source of truth
# ====================================================================================
def _get_pool_config() -> dict:
    """Build asyncpg.create_pool kwargs. Single source of truth for all pool creation."""
    return {
        "min_size": int(os.getenv("DB_POOL_MIN_SIZE", "2")),
        "max_size": int(os.getenv("DB_POOL_MAX_SIZE", "10")),
        "max_inactive_connection_lifetime": 300,
        "timeout": int(os.getenv("DB_POOL_ACQUIRE_TIMEOUT", "10")),
        "command_timeout": int(os.getenv("DB_POOL_COMMAND_TIMEOUT", "30")),
    }


_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """
    Get the connection pool, creating it on first use.

    - DB not configured → RuntimeError
    - Transient connection errors → retried with exponential backoff
    - Everything else is raised immediately
    """
    global _pool
    if not DATABASE_URL:
        raise RuntimeError(f"{config.APP_ENV.upper()}_DATABASE_URL is not configured")
    if _pool is None:
        pool_config = _get_pool_config()
        _pool = await retry_async(
            lambda: asyncpg.create_pool(DATABASE_URL, **pool_config),
            retries=2,
        )
        logger.info(
            "DB_POOL_CONFIG min=%s max=%s acquire_timeout=%s command_timeout=%s",
            pool_config["min_size"], pool_config["max_size"],
            pool_config["timeout"], pool_config["command_timeout"],
        )
    return _pool


async def close_pool():
    """Close the connection pool"""
    global _pool, DB_READY
    if _pool:
        await _pool.close()
        _pool = None
        DB_READY = False
        logger.info("Database connection pool closed")


async def init_db() -> bool:
    """
    Create the invite and access-control tables if missing and mark the database ready.

    Returns:
        True on success

    Raises:
        Any pool/SQL error, for the startup guard in main.py to handle
    """
    global DB_READY

    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS invite_users (
                identity TEXT PRIMARY KEY,
                parent TEXT NULL,
                first_num BIGINT NOT NULL DEFAULT 0,
                second_num BIGINT NOT NULL DEFAULT 0,
                bind_time BIGINT NOT NULL DEFAULT 0,
                CHECK (parent IS NULL OR parent <> identity),
                CHECK (first_num >= 0 AND second_num >= 0)
            )
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS invite_records (
                id BIGSERIAL PRIMARY KEY,
                parent TEXT NOT NULL,
                addr TEXT NOT NULL,
                bind_time BIGINT NOT NULL
            )
        """)
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_invite_records_parent ON invite_records(parent, id)"
        )
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS access_owner (
                id SMALLINT PRIMARY KEY CHECK (id = 1),
                owner TEXT NULL
            )
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS access_operators (
                identity TEXT PRIMARY KEY,
                granted_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

    DB_READY = True
    logger.info("Invite and access tables ready")
    return True


# ====================================================================================
# INVITE READS
# ====================================================================================

async def get_invite_user(identity: str) -> Optional[Dict[str, Any]]:
    """
    Get the invite record of an identity.

    Returns:
        Row as dict, or None if the identity was never written
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT identity, parent, first_num, second_num, bind_time FROM invite_users WHERE identity = $1",
            identity
        )
        return dict(row) if row else None


async def get_invite_bind_context(
    caller: str,
    candidate: str,
    conn: Optional[asyncpg.Connection] = None,
) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Read caller, candidate and candidate's parent in ONE statement (one snapshot).

    Args:
        caller: Identity asking to bind
        candidate: Proposed parent
        conn: Connection inside an open transaction (if None, uses the pool)

    Returns:
        {"caller": row|None, "candidate": row|None, "grandparent": row|None}
    """
    query = """
        WITH cand AS (
            SELECT parent FROM invite_users WHERE identity = $2
        )
        SELECT identity, parent, first_num, second_num, bind_time
        FROM invite_users
        WHERE identity = $1
           OR identity = $2
           OR identity = (SELECT parent FROM cand)
    """
    if conn is None:
        pool = await get_pool()
        async with pool.acquire() as pooled:
            rows = await pooled.fetch(query, caller, candidate)
    else:
        rows = await conn.fetch(query, caller, candidate)

    by_identity = {row["identity"]: dict(row) for row in rows}
    candidate_row = by_identity.get(candidate)
    grandparent_id = candidate_row.get("parent") if candidate_row else None
    return {
        "caller": by_identity.get(caller),
        "candidate": candidate_row,
        "grandparent": by_identity.get(grandparent_id) if grandparent_id else None,
    }


async def get_invite_records_reversed(
    parent: str,
    offset: int,
    limit: int,
) -> Tuple[int, List[Dict[str, Any]]]:
    """
    Newest-first slice of a parent's records plus the total, in ONE statement.

    offset and limit are capped at PG_BIGINT_MAX; no ledger is that long, so
    a capped offset still lands past the end and only the total comes back.

    Returns:
        (total, rows) where rows have keys addr, bind_time
    """
    offset = min(offset, PG_BIGINT_MAX)
    limit = min(limit, PG_BIGINT_MAX)
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            WITH total AS (
                SELECT COUNT(*) AS n FROM invite_records WHERE parent = $1
            ),
            page AS (
                SELECT id, addr, bind_time
                FROM invite_records
                WHERE parent = $1
                ORDER BY id DESC
                OFFSET $2
                LIMIT $3
            )
            SELECT total.n AS total, page.addr, page.bind_time
            FROM total
            LEFT JOIN page ON TRUE
            ORDER BY page.id DESC
            """,
            parent, offset, limit
        )

    if not rows:
        return 0, []
    total = safe_int(rows[0]["total"])
    items = [
        {"addr": row["addr"], "bind_time": safe_int(row["bind_time"])}
        for row in rows
        if row["addr"] is not None
    ]
    return total, items


# ====================================================================================
# INVITE WRITES (only inside invite_transaction)
# ====================================================================================

@asynccontextmanager
async def invite_transaction() -> AsyncIterator[asyncpg.Connection]:
    """
    Open a transaction holding the bind advisory lock.

    Every write of a bind happens on the yielded connection; leaving the block
    with an exception rolls all of them back.
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            # CRITICAL: advisory lock serializes binds across instances and connections
            await conn.execute("SELECT pg_advisory_xact_lock($1)", INVITE_BIND_LOCK_ID)
            yield conn


async def set_invite_parent(conn: asyncpg.Connection, child: str, parent: str, bind_time: int) -> bool:
    """
    Set child's parent (IMMUTABLE - only if no parent recorded yet).

    Returns:
        True if saved, False if child already had a parent
    """
    result = await conn.execute(
        """INSERT INTO invite_users (identity, parent, bind_time)
           VALUES ($1, $2, $3)
           ON CONFLICT (identity) DO UPDATE
           SET parent = EXCLUDED.parent, bind_time = EXCLUDED.bind_time
           WHERE invite_users.parent IS NULL""",
        child, parent, bind_time
    )
    saved = result == "INSERT 0 1"
    if not saved:
        logger.warning(f"INVITE_PARENT_CONFLICT [child={child}, parent={parent}]")
    return saved


async def increment_invite_counter(conn: asyncpg.Connection, identity: str, column: str) -> None:
    """
    Increment first_num or second_num by 1, creating the row if needed.

    BIGINT overflow raises NumericValueOutOfRangeError and aborts the transaction.
    """
    if column not in _COUNTER_COLUMNS:
        raise ValueError(f"Unknown invite counter column: {column}")
    await conn.execute(
        f"""INSERT INTO invite_users (identity, {column})
            VALUES ($1, 1)
            ON CONFLICT (identity) DO UPDATE
            SET {column} = invite_users.{column} + 1""",
        identity
    )


async def append_invite_record(conn: asyncpg.Connection, parent: str, addr: str, bind_time: int) -> None:
    """Append one record under parent. Records are never updated or deleted."""
    await conn.execute(
        "INSERT INTO invite_records (parent, addr, bind_time) VALUES ($1, $2, $3)",
        parent, addr, bind_time
    )


# ====================================================================================
# ACCESS CONTROL ROLES
# ====================================================================================

async def seed_access_roles(owner: Optional[str], operators: List[str]) -> bool:
    """
    Write the initial owner and operators, only on first start.

    Once the owner row exists (even with a renounced owner) the configured
    values are ignored, so revoked operators are never re-granted on restart.

    Returns:
        True if the roles were seeded now, False if they already existed
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            result = await conn.execute(
                "INSERT INTO access_owner (id, owner) VALUES (1, $1) ON CONFLICT (id) DO NOTHING",
                owner or None
            )
            if result != "INSERT 0 1":
                return False
            for identity in operators:
                await conn.execute(
                    "INSERT INTO access_operators (identity) VALUES ($1) ON CONFLICT (identity) DO NOTHING",
                    identity
                )
    logger.info(f"ACCESS_ROLES_SEEDED [owner={owner or None}, operators={len(operators)}]")
    return True


async def get_access_owner() -> Optional[str]:
    """Current owner identity, or None if there is none"""
    pool = await get_pool()
    async with pool.acquire() as conn:
        return await conn.fetchval("SELECT owner FROM access_owner WHERE id = 1")


async def replace_access_owner(expected: str, new_owner: Optional[str]) -> bool:
    """
    Set the owner only if it is still `expected` (compare-and-set).

    Returns:
        True if updated, False if ownership changed in the meantime
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "UPDATE access_owner SET owner = $2 WHERE id = 1 AND owner = $1",
            expected, new_owner
        )
    return result == "UPDATE 1"


async def get_access_operators() -> List[str]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT identity FROM access_operators ORDER BY identity")
    return [row["identity"] for row in rows]


async def add_access_operator(identity: str) -> bool:
    """Returns True if the operator was newly added"""
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "INSERT INTO access_operators (identity) VALUES ($1) ON CONFLICT (identity) DO NOTHING",
            identity
        )
    return result == "INSERT 0 1"


async def remove_access_operator(identity: str) -> bool:
    """Returns True if the operator existed"""
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute("DELETE FROM access_operators WHERE identity = $1", identity)
    return result == "DELETE 1"
