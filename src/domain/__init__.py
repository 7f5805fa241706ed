"""
Domain layer for the notification delivery subsystem.

Contains the delivery entities, value objects and the repository interface
the reliability layer is written against.
"""

from .delivery import (
    CleanupResult,
    DeduplicationLogEntry,
    DeliveryStats,
    EmailRequest,
    EmailResult,
    EmailType,
    IdempotencyRecord,
    SendAttempt,
    SendStatus,
    normalize_recipient,
)
from .repositories import IDeliveryRepository

__all__ = [
    "CleanupResult",
    "DeduplicationLogEntry",
    "DeliveryStats",
    "EmailRequest",
    "EmailResult",
    "EmailType",
    "IdempotencyRecord",
    "SendAttempt",
    "SendStatus",
    "normalize_recipient",
    "IDeliveryRepository",
]
