"""
Event taxonomy for outbound notifications.

This module defines event types and the event format emitted to the
notification sinks (logs, Redis channel, admin Telegram chat).

IMPORTANT:
- Events are for observers only (not runtime behavior)
- Delivery is best-effort; the core never depends on it
- Events support correlation via correlation_id
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from enum import Enum
from datetime import datetime, timezone
import json
import uuid


class EventType(str, Enum):
    """Types of events in the system"""
    # Invite lifecycle
    INVITE_BOUND = "invite_bound"

    # Access control
    OWNERSHIP_TRANSFERRED = "ownership_transferred"
    OPERATOR_GRANTED = "operator_granted"
    OPERATOR_REVOKED = "operator_revoked"


@dataclass
class Event:
    """
    Standard event format.

    All events follow this structure for consistency.
    """
    event_type: EventType
    entity_id: str  # Identity the event is about (child for binds, new owner, operator)
    timestamp: datetime
    correlation_id: str
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert event to dictionary (for serialization).

        Returns:
            Dictionary representation of event
        """
        result = asdict(self)
        result["event_type"] = self.event_type.value
        result["timestamp"] = self.timestamp.isoformat()
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class EventBuilder:
    """
    Builder for creating events with proper formatting.

    Ensures events are free of secrets and follow the standard format.
    """

    @staticmethod
    def create_event(
        event_type: EventType,
        entity_id: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Event:
        """
        Create a standard event.

        Args:
            event_type: Type of event
            entity_id: ID of the entity
            correlation_id: Optional correlation ID (auto-generated if not provided)
            metadata: Optional metadata

        Returns:
            Event instance
        """
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        if metadata is None:
            metadata = {}

        return Event(
            event_type=event_type,
            entity_id=entity_id,
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id,
            metadata=EventBuilder._sanitize_metadata(metadata),
        )

    @staticmethod
    def invite_bound(child: str, parent: str, bind_time: int, correlation_id: Optional[str] = None) -> Event:
        """Event emitted once per successful bind: (child, parent)"""
        return EventBuilder.create_event(
            EventType.INVITE_BOUND,
            entity_id=child,
            correlation_id=correlation_id,
            metadata={"child": child, "parent": parent, "bind_time": bind_time},
        )

    @staticmethod
    def _sanitize_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mask fields that must never leave the process.

        Args:
            metadata: Raw metadata

        Returns:
            Sanitized metadata
        """
        sanitized = dict(metadata)

        sensitive_fields = [
            "password",
            "token",
            "secret",
            "private_key",
            "signature",
        ]

        for field in sensitive_fields:
            if field in sanitized:
                sanitized[field] = "[REDACTED]"

        return sanitized
