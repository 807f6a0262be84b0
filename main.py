import asyncio
import logging
import os
import sys

# Configure logging FIRST (before any other imports that may log)
import config
from app.core.logging_config import setup_logging
setup_logging(config.LOG_LEVEL)

import uvicorn
from aiogram import Bot

import database
import redis_client
from app.api import create_app
from app.core.events import EventType
from app.core.structured_logger import log_event
from app.services.access import AccessControl, DatabaseRoleStore
from app.services.notifications import (
    FanoutEventSink,
    LoggingEventSink,
    RedisEventSink,
    TelegramEventSink,
)
from app.services.referrals import (
    DatabaseInviteStore,
    InMemoryInviteStore,
    InviteService,
    is_none_identity,
)

logger = logging.getLogger(__name__)


async def build_store():
    """
    PostgreSQL store when DATABASE_URL is set, in-memory store otherwise.

    In PROD config.py already refuses to start without DATABASE_URL.
    """
    if not config.DATABASE_URL:
        logger.warning(
            f"{config.APP_ENV.upper()}_DATABASE_URL is not set - using in-memory store (state is lost on restart)"
        )
        return InMemoryInviteStore()

    await database.init_db()
    log_event(logger, component="startup", operation="db_init", outcome="success")
    return DatabaseInviteStore()


def build_sink(redis, bot):
    sinks = [LoggingEventSink()]
    if redis is not None:
        sinks.append(RedisEventSink(redis, config.EVENTS_CHANNEL))
    if bot is not None:
        sinks.append(TelegramEventSink(bot, config.ADMIN_TELEGRAM_ID, event_types=list(EventType)))
    return FanoutEventSink(sinks)


async def main():
    instance_id = os.getenv("INSTANCE_ID", f"pid-{os.getpid()}")
    log_event(logger, component="startup", operation="startup_begin", outcome="success", correlation_id=instance_id)

    store = await build_store()

    redis = None
    if config.REDIS_URL:
        if await redis_client.check_redis_connection():
            redis = redis_client.get_redis_client()
        elif config.DATABASE_URL:
            # Instances share one database; without Redis the advisory lock still serializes binds
            logger.warning("Redis unavailable - binds serialized by the database advisory lock only")

    bot = None
    if config.TELEGRAM_NOTIFICATIONS_ENABLED:
        bot = Bot(token=config.BOT_TOKEN)
        logger.info("Telegram admin notifications enabled")

    sink = build_sink(redis, bot)

    invite_service = InviteService(
        store,
        sink=sink,
        redis_client=redis,
        lock_ttl_seconds=config.BIND_LOCK_TTL_SECONDS,
        lock_wait_seconds=config.BIND_LOCK_WAIT_SECONDS,
    )
    role_store = None
    if config.DATABASE_URL:
        # Roles are shared by every instance; config only seeds them on first start
        await database.seed_access_roles(config.OWNER_IDENTITY, config.OPERATOR_IDENTITIES)
        role_store = DatabaseRoleStore()

    access_control = AccessControl(
        owner=config.OWNER_IDENTITY,
        operators=config.OPERATOR_IDENTITIES,
        sink=sink,
        store=role_store,
    )
    if is_none_identity(await access_control.get_owner()):
        logger.warning("No owner configured - all administrative actions will be rejected")

    app = create_app(
        invite_service,
        access_control,
        default_page_size=config.DEFAULT_PAGE_SIZE,
        max_page_size=config.MAX_PAGE_SIZE,
    )

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.HTTP_HOST,
            port=config.HTTP_PORT,
            log_config=None,
        )
    )
    logger.info(f"HTTP_SERVER_START host={config.HTTP_HOST} port={config.HTTP_PORT} env={config.APP_ENV}")

    try:
        await server.serve()
    finally:
        try:
            await database.close_pool()
        except Exception as e:
            logger.error(f"Error closing database pool: {e}")

        await redis_client.close_redis_client()

        if bot is not None:
            try:
                await bot.session.close()
                logger.info("Bot session closed")
            except Exception as e:
                logger.debug(f"Error closing bot session: {e}")

        log_event(logger, component="shutdown", operation="shutdown_completed", outcome="success")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Service stopped")
        sys.exit(0)
