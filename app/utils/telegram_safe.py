"""
Centralized safe wrapper for bot.send_message.

Handles TelegramBadRequest (chat not found) and TelegramForbiddenError
(bot blocked / kicked) without raising.
"""
import logging
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

logger = logging.getLogger(__name__)


async def safe_send_message(bot, chat_id: int, text: str, **kwargs):
    """
    Send Telegram message with graceful error handling.

    Returns:
        Message on success, None on any handled failure.
    """
    try:
        return await bot.send_message(chat_id, text, **kwargs)

    except TelegramBadRequest as e:
        err_str = str(e).lower()
        if "chat not found" in err_str:
            logger.warning(f"SAFE_SEND_SKIP_CHAT_NOT_FOUND chat={chat_id}")
            return None
        logger.exception(f"SAFE_SEND_BAD_REQUEST chat={chat_id}")
        return None

    except TelegramForbiddenError:
        logger.warning(f"SAFE_SEND_FORBIDDEN chat={chat_id}")
        return None

    except Exception:
        logger.exception(f"SAFE_SEND_UNKNOWN_ERROR chat={chat_id}")
        return None
