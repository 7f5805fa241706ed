"""In-memory Delivery Repository.

Dict-backed IDeliveryRepository for tests and local development. Each
operation holds an asyncio lock for its whole body, which gives the same
per-call atomicity the SQL adapter gets from its unique constraints and
conditional updates.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from domain.delivery import (
    DeduplicationLogEntry,
    DeliveryStats,
    EmailType,
    IdempotencyRecord,
    SendAttempt,
    SendStatus,
)
from domain.repositories import IDeliveryRepository


class InMemoryDeliveryRepository(IDeliveryRepository):
    """Single-process store with the same contract as DeliveryRepository."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._records: Dict[str, IdempotencyRecord] = {}
        self._attempts: Dict[int, SendAttempt] = {}
        self._logs: Dict[int, DeduplicationLogEntry] = {}
        self._attempt_ids = itertools.count(1)
        self._log_ids = itertools.count(1)

    # Snapshot accessors used by tests
    @property
    def records(self) -> List[IdempotencyRecord]:
        return [replace(r) for r in self._records.values()]

    @property
    def attempts(self) -> List[SendAttempt]:
        return [replace(a) for a in self._attempts.values()]

    @property
    def logs(self) -> List[DeduplicationLogEntry]:
        return [replace(entry) for entry in self._logs.values()]

    async def insert_if_absent(self, record: IdempotencyRecord) -> bool:
        async with self._lock:
            if record.idempotency_key in self._records:
                return False
            self._records[record.idempotency_key] = replace(record, metadata=dict(record.metadata))
            return True

    async def get_record(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        async with self._lock:
            record = self._records.get(idempotency_key)
            return replace(record) if record else None

    async def transition_status(
        self,
        idempotency_key: str,
        from_status: SendStatus,
        to_status: SendStatus,
        sent_at: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            record = self._records.get(idempotency_key)
            if record is None or record.status != from_status:
                return False
            record.status = to_status
            if sent_at is not None:
                record.sent_at = sent_at
            return True

    async def delete_record(self, idempotency_key: str) -> bool:
        async with self._lock:
            return self._records.pop(idempotency_key, None) is not None

    async def find_recent_sent(
        self,
        recipient: str,
        email_type: EmailType,
        content_hash: str,
        since: datetime,
        exclude_key: Optional[str] = None,
    ) -> Optional[IdempotencyRecord]:
        async with self._lock:
            matches = [
                r for r in self._records.values()
                if r.recipient == recipient
                and r.email_type == email_type
                and r.content_hash == content_hash
                and r.status == SendStatus.SENT
                and r.sent_at is not None
                and r.sent_at >= since
                and r.idempotency_key != exclude_key
            ]
            if not matches:
                return None
            return replace(max(matches, key=lambda r: r.sent_at))

    async def count_attempts(self, idempotency_key: str) -> int:
        async with self._lock:
            return sum(1 for a in self._attempts.values() if a.idempotency_key == idempotency_key)

    async def get_latest_attempt(self, idempotency_key: str) -> Optional[SendAttempt]:
        async with self._lock:
            attempts = [a for a in self._attempts.values() if a.idempotency_key == idempotency_key]
            if not attempts:
                return None
            return replace(max(attempts, key=lambda a: a.attempt_number))

    async def insert_attempt(self, attempt: SendAttempt) -> Optional[int]:
        async with self._lock:
            for existing in self._attempts.values():
                if (existing.idempotency_key == attempt.idempotency_key
                        and existing.attempt_number == attempt.attempt_number):
                    return None
            attempt_id = next(self._attempt_ids)
            self._attempts[attempt_id] = replace(attempt, id=attempt_id)
            return attempt_id

    async def complete_attempt(
        self,
        attempt_id: int,
        status: SendStatus,
        error_message: Optional[str],
        completed_at: datetime,
    ) -> bool:
        async with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is None or attempt.status != SendStatus.PENDING:
                return False
            attempt.status = status
            attempt.error_message = error_message
            attempt.completed_at = completed_at
            return True

    async def add_dedup_log(self, entry: DeduplicationLogEntry) -> int:
        async with self._lock:
            log_id = next(self._log_ids)
            self._logs[log_id] = replace(entry, id=log_id, metadata=dict(entry.metadata))
            return log_id

    async def list_dedup_logs(self, since: datetime, limit: int) -> List[DeduplicationLogEntry]:
        async with self._lock:
            entries = [e for e in self._logs.values() if e.prevented_at >= since]
            entries.sort(key=lambda e: (e.prevented_at, e.id), reverse=True)
            return [replace(e) for e in entries[:limit]]

    async def list_expired_keys(self, now: datetime, limit: int) -> List[str]:
        async with self._lock:
            expired = sorted(
                (r for r in self._records.values() if r.expires_at < now),
                key=lambda r: r.expires_at,
            )
            return [r.idempotency_key for r in expired[:limit]]

    async def delete_attempts_for(self, keys: Sequence[str]) -> int:
        wanted = set(keys)
        async with self._lock:
            doomed = [i for i, a in self._attempts.items() if a.idempotency_key in wanted]
            for attempt_id in doomed:
                del self._attempts[attempt_id]
            return len(doomed)

    async def delete_records(self, keys: Sequence[str], now: datetime) -> int:
        async with self._lock:
            deleted = 0
            for key in keys:
                record = self._records.get(key)
                if record is not None and record.expires_at < now:
                    del self._records[key]
                    deleted += 1
            return deleted

    async def delete_logs_before(self, cutoff: datetime) -> int:
        async with self._lock:
            doomed = [i for i, e in self._logs.items() if e.prevented_at < cutoff]
            for log_id in doomed:
                del self._logs[log_id]
            return len(doomed)

    async def get_stats(self, since: datetime) -> DeliveryStats:
        async with self._lock:
            recent = [r for r in self._records.values() if r.created_at >= since]
            return DeliveryStats(
                total_sent=sum(1 for r in recent if r.status == SendStatus.SENT),
                total_failed=sum(1 for r in recent if r.status == SendStatus.FAILED),
                duplicates_prevented=sum(1 for e in self._logs.values() if e.prevented_at >= since),
                retry_attempts=sum(
                    1 for a in self._attempts.values()
                    if a.attempted_at >= since and a.attempt_number > 1
                ),
                unique_recipients=len({r.recipient for r in recent}),
            )
