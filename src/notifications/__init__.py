"""
Notification Delivery Reliability

Exactly-once intent for outbound email on top of a fallible transport
and a shared store.

Provides:
- Idempotency keys and content hashes (KeyGenerator)
- Per-key send/skip/retry decisions (IdempotencyGuard)
- Recent identical-content suppression (ContentDuplicateGuard)
- Bounded, append-only attempt history (AttemptTracker)
- Expiry of bookkeeping rows (RetentionSweeper)
- Async email transport (SMTP, null)

The orchestrating facade is services.email_delivery_service.EmailDeliveryService.
"""

from .errors import (
    DeliveryError,
    StoreUnavailableError,
    TransportError,
    RetryExhaustedError,
)
from .email_provider import (
    EmailProvider,
    EmailMessage,
    DeliveryResult,
    DeliveryStatus,
    NullEmailProvider,
    get_email_provider,
    set_email_provider,
)
from .smtp_provider import SMTPProvider
from .key_generator import KeyGenerator
from .idempotency_guard import (
    CheckResult,
    GuardDecision,
    GuardOutcome,
    IdempotencyGuard,
)
from .content_guard import ContentDuplicateGuard
from .attempt_tracker import AttemptTracker
from .retention import RetentionSweeper

__all__ = [
    # Errors
    "DeliveryError",
    "StoreUnavailableError",
    "TransportError",
    "RetryExhaustedError",
    # Transport
    "EmailProvider",
    "EmailMessage",
    "DeliveryResult",
    "DeliveryStatus",
    "NullEmailProvider",
    "SMTPProvider",
    "get_email_provider",
    "set_email_provider",
    # Reliability components
    "KeyGenerator",
    "CheckResult",
    "GuardDecision",
    "GuardOutcome",
    "IdempotencyGuard",
    "ContentDuplicateGuard",
    "AttemptTracker",
    "RetentionSweeper",
]
