"""
Content Duplicate Guard

Catches logically distinct keys that carry the same content to the same
recipient within a short trailing window. Best effort: two senders racing
inside the window can both pass before either commits ``sent``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from config.settings import DeliverySettings
from domain.delivery import DeduplicationLogEntry, EmailType, IdempotencyRecord
from domain.repositories import IDeliveryRepository

logger = logging.getLogger(__name__)


class ContentDuplicateGuard:
    """Window-based duplicate detection on (recipient, type, content hash)."""

    def __init__(self, repository: IDeliveryRepository, settings: DeliverySettings):
        self.repository = repository
        self.settings = settings

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.settings.duplicate_window_minutes)

    async def find_recent_duplicate(
        self,
        recipient: str,
        email_type: EmailType,
        content_hash: str,
        now: datetime,
        exclude_key: Optional[str] = None,
    ) -> Optional[IdempotencyRecord]:
        """Most recent ``sent`` record with identical content inside the window."""
        if self.settings.duplicate_window_minutes <= 0:
            return None
        return await self.repository.find_recent_sent(
            recipient,
            email_type,
            content_hash,
            since=now - self.window,
            exclude_key=exclude_key,
        )

    async def record_prevented(
        self,
        original: IdempotencyRecord,
        duplicate_key: str,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeduplicationLogEntry:
        """Write the audit entry for a suppressed send."""
        entry = DeduplicationLogEntry(
            recipient=original.recipient,
            email_type=original.email_type,
            content_hash=original.content_hash,
            original_key=original.idempotency_key,
            duplicate_key=duplicate_key,
            prevented_at=now,
            metadata={
                "reason": "content_duplicate",
                "window_minutes": self.settings.duplicate_window_minutes,
                "original_sent_at": original.sent_at.isoformat() if original.sent_at else None,
                **(metadata or {}),
            },
        )
        entry.id = await self.repository.add_dedup_log(entry)
        return entry

    async def check(
        self,
        idempotency_key: str,
        recipient: str,
        email_type: EmailType,
        content_hash: str,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[IdempotencyRecord]:
        """
        Find a recent duplicate for this key's content and log it.

        Returns:
            The original record when the send must be suppressed, else None.
        """
        original = await self.find_recent_duplicate(
            recipient, email_type, content_hash, now, exclude_key=idempotency_key
        )
        if original is None:
            return None

        await self.record_prevented(original, idempotency_key, now, metadata)
        logger.info(
            f"Duplicate content email prevented: {idempotency_key} matches {original.idempotency_key}",
            extra={
                "idempotency_key": idempotency_key,
                "original_key": original.idempotency_key,
            },
        )
        return original
