"""
Notification Service Layer

Event sinks for outbound notifications. The invite core emits one event per
successful bind; access control emits one per role change.

Delivery is best-effort: dispatch_event() logs sink failures and never
propagates them to the caller whose operation already committed.
"""

import logging
from typing import Iterable, List, Optional

from app.core.events import Event, EventType
from app.core.structured_logger import log_event
from app.services.notifications.exceptions import EventDeliveryError
from app.utils.telegram_safe import safe_send_message

logger = logging.getLogger(__name__)


# ====================================================================================
# Sinks
# ====================================================================================

class EventSink:
    """Receives events. Implementations may raise; dispatch_event() contains it."""

    async def emit(self, event: Event) -> None:
        raise NotImplementedError


class LoggingEventSink(EventSink):
    """Writes each event as a structured log line"""

    def __init__(self, sink_logger: Optional[logging.Logger] = None):
        self.logger = sink_logger or logger

    async def emit(self, event: Event) -> None:
        self.logger.info(
            "EVENT %s entity=%s correlation_id=%s metadata=%s",
            event.event_type.value,
            event.entity_id,
            event.correlation_id,
            event.metadata,
        )


class MemoryEventSink(EventSink):
    """Keeps every event in a list (tests, local runs)"""

    def __init__(self):
        self.events: List[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]


class RedisEventSink(EventSink):
    """Publishes events as JSON on a Redis pub/sub channel"""

    def __init__(self, redis_client, channel: str):
        self.redis_client = redis_client
        self.channel = channel

    async def emit(self, event: Event) -> None:
        try:
            await self.redis_client.publish(self.channel, event.to_json())
        except Exception as e:
            raise EventDeliveryError(f"redis publish to {self.channel} failed: {e}") from e


class TelegramEventSink(EventSink):
    """Sends a short message per event to the admin chat"""

    def __init__(self, bot, chat_id: int, event_types: Optional[Iterable[EventType]] = None):
        self.bot = bot
        self.chat_id = chat_id
        self.event_types = set(event_types) if event_types is not None else None

    async def emit(self, event: Event) -> None:
        if self.event_types is not None and event.event_type not in self.event_types:
            return
        message = format_event_message(event)
        sent = await safe_send_message(self.bot, self.chat_id, message)
        if sent is None:
            raise EventDeliveryError(f"telegram delivery to chat {self.chat_id} failed")


class FanoutEventSink(EventSink):
    """Emits to several sinks; one failing sink does not stop the others"""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    async def emit(self, event: Event) -> None:
        failed = 0
        for sink in self.sinks:
            if not await dispatch_event(sink, event):
                failed += 1
        if failed:
            raise EventDeliveryError(f"{failed}/{len(self.sinks)} sinks failed for {event.event_type.value}")


# ====================================================================================
# Dispatch
# ====================================================================================

async def dispatch_event(sink: Optional[EventSink], event: Event) -> bool:
    """
    Deliver an event, containing any sink failure.

    Returns:
        True if delivered (or no sink configured), False if the sink failed
    """
    if sink is None:
        return True
    try:
        await sink.emit(event)
        return True
    except Exception as e:
        log_event(
            logger,
            component="notifications",
            operation="event_dispatch",
            correlation_id=event.correlation_id,
            outcome="failed",
            reason=f"{type(sink).__name__}: {str(e)[:100]}",
            level="warning",
        )
        return False


def format_event_message(event: Event) -> str:
    """Plain-text rendering used by the Telegram sink"""
    meta = event.metadata
    if event.event_type == EventType.INVITE_BOUND:
        return f"Invite bound: {meta.get('child')} -> {meta.get('parent')}"
    if event.event_type == EventType.OWNERSHIP_TRANSFERRED:
        return f"Ownership transferred: {meta.get('previous_owner')} -> {meta.get('new_owner')}"
    if event.event_type == EventType.OPERATOR_GRANTED:
        return f"Operator granted: {event.entity_id}"
    if event.event_type == EventType.OPERATOR_REVOKED:
        return f"Operator revoked: {event.entity_id}"
    return f"{event.event_type.value}: {event.entity_id}"
