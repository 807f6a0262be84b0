import os
import sys

# ====================================================================================
# ENVIRONMENT CONFIGURATION: PROD / STAGE / LOCAL isolation via prefixes
# ====================================================================================
# All variables are read with the environment prefix:
#   - PROD:  PROD_DATABASE_URL, PROD_REDIS_URL, PROD_OWNER_IDENTITY
#   - STAGE: STAGE_DATABASE_URL, STAGE_REDIS_URL, STAGE_OWNER_IDENTITY
#   - LOCAL: LOCAL_DATABASE_URL, LOCAL_REDIS_URL, LOCAL_OWNER_IDENTITY
#
# A STAGE instance can never pick up PROD_DATABASE_URL even if it is set.
# ====================================================================================

APP_ENV = os.getenv("APP_ENV", "local").lower()
if APP_ENV not in ("prod", "stage", "local"):
    print(f"ERROR: Invalid APP_ENV={APP_ENV}. Must be one of: prod, stage, local", file=sys.stderr)
    sys.exit(1)

IS_LOCAL = APP_ENV == "local"
IS_STAGE = APP_ENV == "stage"
IS_PROD = APP_ENV == "prod"


def env(key: str, default: str = "") -> str:
    """
    Read an environment variable with the environment prefix.

    Example:
        env("DATABASE_URL") -> value of STAGE_DATABASE_URL (if APP_ENV=stage)
        env("MAX_PAGE_SIZE", default="100") -> "100" if not set
    """
    env_key = f"{APP_ENV.upper()}_{key}"
    return os.getenv(env_key, default)


def env_int(key: str, default: int) -> int:
    raw = env(key, default=str(default))
    try:
        return int(raw)
    except ValueError:
        print(f"ERROR: {APP_ENV.upper()}_{key} must be an integer, got: {raw}", file=sys.stderr)
        sys.exit(1)


# Unprefixed variables are forbidden for the sensitive keys in PROD
_direct_usage_vars = ["DATABASE_URL", "REDIS_URL", "BOT_TOKEN", "OWNER_IDENTITY"]
for var in _direct_usage_vars:
    if IS_PROD and os.getenv(var):
        print(f"ERROR: Direct usage of {var} is FORBIDDEN!", file=sys.stderr)
        print(f"ERROR: Use {APP_ENV.upper()}_{var} instead (via env('{var}'))", file=sys.stderr)
        sys.exit(1)

# ====================================================================================
# STORAGE
# ====================================================================================
# PostgreSQL holds both invite tables. Without it the service runs on the
# in-memory store (state is lost on restart), which is only allowed outside PROD.
DATABASE_URL = env("DATABASE_URL")
if not DATABASE_URL and IS_PROD:
    print("ERROR: PROD_DATABASE_URL is REQUIRED in PROD!", file=sys.stderr)
    sys.exit(1)

# Redis: cross-instance bind lock + event channel (optional)
REDIS_URL = env("REDIS_URL", default="")
EVENTS_CHANNEL = env("EVENTS_CHANNEL", default="invite-events")

# Bind writer lock (Redis) timing
BIND_LOCK_TTL_SECONDS = env_int("BIND_LOCK_TTL_SECONDS", 10)
BIND_LOCK_WAIT_SECONDS = env_int("BIND_LOCK_WAIT_SECONDS", 5)

# ====================================================================================
# ACCESS CONTROL
# ====================================================================================
# Initial owner identity. Empty -> no owner (every admin action is rejected).
OWNER_IDENTITY = env("OWNER_IDENTITY", default="")
OPERATOR_IDENTITIES = [
    op.strip() for op in env("OPERATOR_IDENTITIES", default="").split(",") if op.strip()
]

# ====================================================================================
# NOTIFICATIONS
# ====================================================================================
# Telegram admin notifications about binds (optional, both values required)
BOT_TOKEN = env("BOT_TOKEN", default="")
ADMIN_TELEGRAM_ID_STR = env("ADMIN_TELEGRAM_ID", default="")
ADMIN_TELEGRAM_ID = None
if ADMIN_TELEGRAM_ID_STR:
    try:
        ADMIN_TELEGRAM_ID = int(ADMIN_TELEGRAM_ID_STR)
    except ValueError:
        print(f"ERROR: ADMIN_TELEGRAM_ID must be a number, got: {ADMIN_TELEGRAM_ID_STR}", file=sys.stderr)
        sys.exit(1)
TELEGRAM_NOTIFICATIONS_ENABLED = bool(BOT_TOKEN and ADMIN_TELEGRAM_ID)

# ====================================================================================
# HTTP API
# ====================================================================================
HTTP_HOST = env("HTTP_HOST", default="0.0.0.0")
HTTP_PORT = int(os.getenv("PORT") or env("HTTP_PORT") or "8080")

DEFAULT_PAGE_SIZE = env_int("DEFAULT_PAGE_SIZE", 20)
MAX_PAGE_SIZE = env_int("MAX_PAGE_SIZE", 100)

LOG_LEVEL = env("LOG_LEVEL", default="INFO").upper()
