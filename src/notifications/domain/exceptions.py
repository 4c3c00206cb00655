# src/notifications/domain/exceptions.py
"""
Notification Domain Exceptions
"""


class NotificationError(Exception):
    """Base exception for notification relay errors."""
    pass


class EnvelopeDecodeError(NotificationError):
    """Raised when an outbox payload cannot be decoded into an envelope."""
    pass


class MissingRecipientsError(EnvelopeDecodeError):
    """Raised when an envelope declares no recipients."""
    pass


class DeliveryError(NotificationError):
    """Raised when a delivery channel rejects or fails a publish."""
    pass


class GroupDeliveryError(DeliveryError):
    """Raised when one or more per-recipient group sends failed."""

    def __init__(self, message: str, failures: list[BaseException]):
        super().__init__(message)
        self.failures = failures
