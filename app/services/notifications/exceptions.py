"""
Notification Service Domain Exceptions

All exceptions raised by the notification sinks.
"""


class NotificationServiceError(Exception):
    """Base exception for notification service errors"""
    pass


class EventDeliveryError(NotificationServiceError):
    """Raised when a sink could not deliver an event"""
    pass
