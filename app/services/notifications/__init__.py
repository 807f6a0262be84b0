"""
Notification Service Layer

Best-effort event sinks (logs, Redis channel, admin Telegram chat).
"""

from app.services.notifications.service import (
    EventSink,
    LoggingEventSink,
    MemoryEventSink,
    RedisEventSink,
    TelegramEventSink,
    FanoutEventSink,
    dispatch_event,
    format_event_message,
)

from app.services.notifications.exceptions import (
    NotificationServiceError,
    EventDeliveryError,
)

__all__ = [
    "EventSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "RedisEventSink",
    "TelegramEventSink",
    "FanoutEventSink",
    "dispatch_event",
    "format_event_message",
    "NotificationServiceError",
    "EventDeliveryError",
]
