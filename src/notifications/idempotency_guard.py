"""
Idempotency Guard

Per-key state machine: absent -> pending -> {sent | failed}, with
failed -> pending on retry. Every decision is made against the store's
current state; concurrent callers are separated by the store's atomic
primitives (insert-if-absent and conditional status transitions), never
by in-process locks.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from config.settings import DeliverySettings
from domain.delivery import EmailType, IdempotencyRecord, SendStatus
from domain.repositories import IDeliveryRepository

logger = logging.getLogger(__name__)


class GuardDecision(str, Enum):
    """What the caller may do with a key."""
    PROCEED = "proceed"
    ALREADY_SENT = "already_sent"
    EXHAUSTED = "exhausted"
    IN_PROGRESS = "in_progress"


@dataclass
class CheckResult:
    """Outcome of the atomic insert-if-absent step."""
    existing: Optional[IdempotencyRecord]
    created: bool


@dataclass
class GuardOutcome:
    """Decision for one send call plus what this call changed in the store."""
    decision: GuardDecision
    idempotency_key: str
    record: Optional[IdempotencyRecord] = None
    created: bool = False
    claimed: bool = False
    attempts_made: int = 0

    @property
    def may_send(self) -> bool:
        return self.decision == GuardDecision.PROCEED


class IdempotencyGuard:
    """Decides send/skip/retry for an idempotency key."""

    def __init__(self, repository: IDeliveryRepository, settings: DeliverySettings):
        self.repository = repository
        self.settings = settings

    async def check_or_create(
        self,
        idempotency_key: str,
        email_type: EmailType,
        recipient: str,
        content_hash: str,
        metadata: Optional[Dict[str, Any]],
        now: datetime,
    ) -> CheckResult:
        """
        Insert a pending record unless one exists, else return the existing one.

        Exactly one of several concurrent callers gets ``created=True``.
        """
        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            email_type=email_type,
            recipient=recipient,
            content_hash=content_hash,
            status=SendStatus.PENDING,
            expires_at=now + timedelta(hours=self.settings.ttl_hours),
            created_at=now,
            metadata=dict(metadata or {}),
        )

        # The row can vanish between a lost insert and the read when the
        # sweep removes it; one more insert settles it.
        for _ in range(2):
            if await self.repository.insert_if_absent(record):
                return CheckResult(existing=None, created=True)
            existing = await self.repository.get_record(idempotency_key)
            if existing is not None:
                return CheckResult(existing=existing, created=False)

        return CheckResult(existing=None, created=False)

    async def admit(
        self,
        idempotency_key: str,
        email_type: EmailType,
        recipient: str,
        content_hash: str,
        metadata: Optional[Dict[str, Any]],
        now: datetime,
    ) -> GuardOutcome:
        """Run check_or_create and decide whether this caller may send."""
        check = await self.check_or_create(
            idempotency_key, email_type, recipient, content_hash, metadata, now
        )
        if check.created:
            return GuardOutcome(GuardDecision.PROCEED, idempotency_key, created=True)
        if check.existing is None:
            return GuardOutcome(GuardDecision.IN_PROGRESS, idempotency_key)
        return await self.evaluate(check.existing, now)

    async def evaluate(self, existing: IdempotencyRecord, now: datetime) -> GuardOutcome:
        """Decide what to do with a record another call created."""
        key = existing.idempotency_key

        if existing.status == SendStatus.SENT:
            return GuardOutcome(GuardDecision.ALREADY_SENT, key, record=existing)

        attempts = await self.repository.count_attempts(key)
        max_attempts = self.settings.max_retry_attempts

        if existing.status == SendStatus.FAILED:
            if attempts >= max_attempts:
                return GuardOutcome(
                    GuardDecision.EXHAUSTED, key, record=existing, attempts_made=attempts
                )
            claimed = await self.repository.transition_status(
                key, SendStatus.FAILED, SendStatus.PENDING
            )
            if not claimed:
                logger.info(f"Retry for {key} already claimed by another sender")
                return GuardOutcome(
                    GuardDecision.IN_PROGRESS, key, record=existing, attempts_made=attempts
                )
            return GuardOutcome(
                GuardDecision.PROCEED, key, record=existing, claimed=True, attempts_made=attempts
            )

        # pending: another sender is (or was) working on this key
        latest = await self.repository.get_latest_attempt(key)
        last_activity = latest.attempted_at if latest else existing.created_at
        if now - last_activity < timedelta(minutes=self.settings.stale_pending_minutes):
            return GuardOutcome(
                GuardDecision.IN_PROGRESS, key, record=existing, attempts_made=attempts
            )

        logger.warning(
            f"Taking over abandoned pending send {key}",
            extra={"idempotency_key": key, "attempts": attempts},
        )
        if latest is not None and latest.status == SendStatus.PENDING and latest.id is not None:
            await self.repository.complete_attempt(
                latest.id, SendStatus.FAILED, "Abandoned before completion", now
            )

        if attempts >= max_attempts:
            await self.repository.transition_status(key, SendStatus.PENDING, SendStatus.FAILED)
            return GuardOutcome(
                GuardDecision.EXHAUSTED, key, record=existing, attempts_made=attempts
            )
        return GuardOutcome(
            GuardDecision.PROCEED, key, record=existing, claimed=True, attempts_made=attempts
        )

    async def mark_sent(self, idempotency_key: str, sent_at: datetime) -> bool:
        """Transition pending -> sent. Safe to call again once sent."""
        if await self.repository.transition_status(
            idempotency_key, SendStatus.PENDING, SendStatus.SENT, sent_at=sent_at
        ):
            return True
        return await self._already_in(idempotency_key, SendStatus.SENT)

    async def mark_failed(self, idempotency_key: str) -> bool:
        """Transition pending -> failed. Safe to call again once failed; never downgrades sent."""
        if await self.repository.transition_status(
            idempotency_key, SendStatus.PENDING, SendStatus.FAILED
        ):
            return True
        return await self._already_in(idempotency_key, SendStatus.FAILED)

    async def release(self, outcome: GuardOutcome) -> None:
        """Undo what ``admit`` did for a call that will not send."""
        key = outcome.idempotency_key
        if outcome.created:
            await self.repository.delete_record(key)
        elif outcome.claimed and outcome.record is not None and outcome.record.status == SendStatus.FAILED:
            await self.repository.transition_status(key, SendStatus.PENDING, SendStatus.FAILED)

    async def _already_in(self, idempotency_key: str, status: SendStatus) -> bool:
        record = await self.repository.get_record(idempotency_key)
        if record is not None and record.status == status:
            return True
        current = record.status.value if record else "absent"
        logger.warning(
            f"Could not mark {idempotency_key} {status.value}; record is {current}",
            extra={"idempotency_key": idempotency_key},
        )
        return False
