"""
Unit tests for notification sinks.

Tests focus on best-effort delivery:
- dispatch_event never raises
- Fanout keeps going past a failing sink
- Redis and Telegram sinks report delivery failures
"""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.events import EventBuilder, EventType
from app.services.notifications import (
    EventDeliveryError,
    EventSink,
    FanoutEventSink,
    LoggingEventSink,
    MemoryEventSink,
    RedisEventSink,
    TelegramEventSink,
    dispatch_event,
    format_event_message,
)
from tests.conftest import ALICE, BOB


class BrokenSink(EventSink):
    """Sink that always raises"""

    async def emit(self, event):
        raise RuntimeError("boom")


@pytest.fixture
def bound_event():
    return EventBuilder.invite_bound(child=ALICE, parent=BOB, bind_time=100, correlation_id="req-1")


class TestDispatchEvent:
    """Tests for dispatch_event"""

    @pytest.mark.asyncio
    async def test_no_sink(self, bound_event):
        """No sink counts as delivered"""
        assert await dispatch_event(None, bound_event) is True

    @pytest.mark.asyncio
    async def test_delivered(self, bound_event):
        """Delivered event reaches the sink"""
        sink = MemoryEventSink()
        assert await dispatch_event(sink, bound_event) is True
        assert sink.events == [bound_event]

    @pytest.mark.asyncio
    async def test_failure_contained(self, bound_event):
        """Sink exceptions are contained and reported as False"""
        assert await dispatch_event(BrokenSink(), bound_event) is False

    @pytest.mark.asyncio
    async def test_logging_sink(self, bound_event):
        """Logging sink always succeeds"""
        assert await dispatch_event(LoggingEventSink(), bound_event) is True


class TestFanoutEventSink:
    """Fanout over several sinks"""

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_block_others(self, bound_event):
        """A raising sink does not stop later sinks"""
        memory = MemoryEventSink()
        fanout = FanoutEventSink([BrokenSink(), memory])

        with pytest.raises(EventDeliveryError):
            await fanout.emit(bound_event)

        assert memory.events == [bound_event]

    @pytest.mark.asyncio
    async def test_all_succeed(self, bound_event):
        """Every sink receives the event"""
        first, second = MemoryEventSink(), MemoryEventSink()
        await FanoutEventSink([first, second]).emit(bound_event)
        assert len(first.events) == len(second.events) == 1


class TestRedisEventSink:
    """Redis pub/sub sink"""

    @pytest.mark.asyncio
    async def test_publishes_json(self, mock_redis, bound_event):
        """Event is published as JSON on the channel"""
        sink = RedisEventSink(mock_redis, "invite-events")

        await sink.emit(bound_event)

        channel, payload = mock_redis.publish.await_args.args
        assert channel == "invite-events"
        data = json.loads(payload)
        assert data["event_type"] == "invite_bound"
        assert data["metadata"]["parent"] == BOB
        assert data["correlation_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_publish_error_wrapped(self, mock_redis, bound_event):
        """Redis errors are wrapped in EventDeliveryError"""
        mock_redis.publish = AsyncMock(side_effect=ConnectionError("down"))
        sink = RedisEventSink(mock_redis, "invite-events")

        with pytest.raises(EventDeliveryError):
            await sink.emit(bound_event)


class TestTelegramEventSink:
    """Telegram admin sink"""

    @pytest.mark.asyncio
    async def test_sends_message(self, bound_event):
        """Bound event is sent to the admin chat"""
        bot = MagicMock()
        bot.send_message = AsyncMock(return_value=MagicMock())
        sink = TelegramEventSink(bot, chat_id=42)

        await sink.emit(bound_event)

        bot.send_message.assert_awaited_once_with(42, f"Invite bound: {ALICE} -> {BOB}")

    @pytest.mark.asyncio
    async def test_filtered_event_type_skipped(self, bound_event):
        """Events outside the configured types are not sent"""
        bot = MagicMock()
        bot.send_message = AsyncMock()
        sink = TelegramEventSink(bot, chat_id=42, event_types=[EventType.OPERATOR_GRANTED])

        await sink.emit(bound_event)

        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undelivered_raises(self, bound_event):
        """Undelivered Telegram message raises EventDeliveryError"""
        with patch(
            "app.services.notifications.service.safe_send_message",
            new=AsyncMock(return_value=None),
        ):
            sink = TelegramEventSink(MagicMock(), chat_id=42)
            with pytest.raises(EventDeliveryError):
                await sink.emit(bound_event)


class TestEventFormat:
    """EventBuilder and message formatting"""

    def test_sensitive_metadata_redacted(self):
        """Sensitive metadata keys are redacted"""
        event = EventBuilder.create_event(
            EventType.OPERATOR_GRANTED,
            entity_id=ALICE,
            metadata={"token": "abc", "granted_by": BOB},
        )
        assert event.metadata == {"token": "[REDACTED]", "granted_by": BOB}

    def test_correlation_id_generated(self):
        """Missing correlation id is generated"""
        event = EventBuilder.create_event(EventType.OPERATOR_REVOKED, entity_id=ALICE)
        assert event.correlation_id

    def test_messages(self):
        """Human-readable message per event type"""
        event = EventBuilder.create_event(EventType.OPERATOR_REVOKED, entity_id=ALICE)
        assert format_event_message(event) == f"Operator revoked: {ALICE}"
