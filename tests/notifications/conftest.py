"""
Pytest fixtures for notification delivery tests.

Provides:
- Delivery settings with the production defaults
- A controllable clock
- An in-memory repository
- A scriptable email provider
- Request and record factories
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import pytest

from config.settings import DeliverySettings
from database.repositories import InMemoryDeliveryRepository
from domain.delivery import (
    EmailRequest,
    EmailType,
    IdempotencyRecord,
    SendAttempt,
    SendStatus,
)
from notifications.email_provider import (
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    EmailProvider,
)
from services.email_delivery_service import EmailDeliveryService


class FakeClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ScriptedProvider(EmailProvider):
    """
    Provider whose outcomes are queued up front.

    Each queued outcome is True (success), a string (failure with that
    error message) or an exception instance (raised). Once the queue is
    empty every send succeeds.
    """

    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.outcomes: List[Union[bool, str, Exception]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def is_configured(self) -> bool:
        return True

    @property
    def calls(self) -> int:
        return len(self.sent)

    async def send(self, message: EmailMessage) -> DeliveryResult:
        self.sent.append(message)
        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is True:
            return DeliveryResult(success=True, status=DeliveryStatus.SENT, provider="scripted")
        return DeliveryResult(
            success=False,
            status=DeliveryStatus.FAILED,
            provider="scripted",
            error_message=str(outcome),
            error_code="SMTP_ERROR",
        )


@pytest.fixture
def delivery_settings():
    """Delivery policy with the documented defaults."""
    return DeliverySettings(
        ttl_hours=24,
        max_retry_attempts=3,
        duplicate_window_minutes=5,
        log_retention_days=30,
        stale_pending_minutes=15,
        cleanup_batch_size=500,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 10, 15, 0))


@pytest.fixture
def repository():
    return InMemoryDeliveryRepository()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def service(repository, provider, delivery_settings, clock):
    return EmailDeliveryService(
        repository,
        provider=provider,
        settings=delivery_settings,
        clock=clock,
    )


@pytest.fixture
def make_request():
    """Factory for EmailRequest with sensible defaults."""
    def _make(**overrides: Any) -> EmailRequest:
        data: Dict[str, Any] = {
            "to": "a@b.com",
            "subject": "X",
            "text": "Your case has been updated.",
            "email_type": EmailType.SYSTEM,
        }
        data.update(overrides)
        return EmailRequest(**data)
    return _make


@pytest.fixture
def make_record(clock, delivery_settings):
    """Factory for IdempotencyRecord rows relative to the fake clock."""
    def _make(
        key: str,
        status: SendStatus = SendStatus.PENDING,
        recipient: str = "a@b.com",
        content_hash: str = "hash-1",
        email_type: EmailType = EmailType.SYSTEM,
        created_at: Optional[datetime] = None,
        sent_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> IdempotencyRecord:
        created_at = created_at or clock()
        return IdempotencyRecord(
            idempotency_key=key,
            email_type=email_type,
            recipient=recipient,
            content_hash=content_hash,
            status=status,
            created_at=created_at,
            sent_at=sent_at,
            expires_at=expires_at or created_at + timedelta(hours=delivery_settings.ttl_hours),
        )
    return _make


@pytest.fixture
def add_attempts(repository, clock):
    """Insert ``count`` completed attempts for a key."""
    async def _add(key: str, count: int, status: SendStatus = SendStatus.FAILED,
                   attempted_at: Optional[datetime] = None) -> None:
        for number in range(1, count + 1):
            attempt_id = await repository.insert_attempt(SendAttempt(
                idempotency_key=key,
                attempt_number=number,
                status=SendStatus.PENDING,
                attempted_at=attempted_at or clock(),
            ))
            if status != SendStatus.PENDING:
                await repository.complete_attempt(attempt_id, status, "boom", clock())
    return _add
