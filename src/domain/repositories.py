"""
Repository Interface for delivery bookkeeping.

The delivery subsystem never caches store state in process: every decision
is re-derived from the repository on each call, which is what keeps several
service instances sharing one database correct.

This abstraction allows:
1. Swapping storage backends (SQLite -> PostgreSQL)
2. Testing with an in-memory implementation
3. Making the race-resolving primitives (insert_if_absent,
   transition_status, unique attempt slots) explicit in the contract
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from .delivery import (
    DeduplicationLogEntry,
    DeliveryStats,
    EmailType,
    IdempotencyRecord,
    SendAttempt,
    SendStatus,
)


class IDeliveryRepository(ABC):
    """
    Delivery Repository Interface.

    Owns the idempotency records, send attempts and deduplication log.
    """

    # -------------------------------------------------------------------------
    # Idempotency records
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_if_absent(self, record: IdempotencyRecord) -> bool:
        """
        Atomically insert a record unless one with the same key exists.

        Returns:
            True if this call inserted the row, False if the key was taken.
        """
        pass

    @abstractmethod
    async def get_record(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        """Get an idempotency record by key."""
        pass

    @abstractmethod
    async def transition_status(
        self,
        idempotency_key: str,
        from_status: SendStatus,
        to_status: SendStatus,
        sent_at: Optional[datetime] = None,
    ) -> bool:
        """
        Conditionally move a record from one status to another.

        Returns:
            True if the record was in from_status and has been updated.
        """
        pass

    @abstractmethod
    async def delete_record(self, idempotency_key: str) -> bool:
        """Delete a single record. Returns True if it existed."""
        pass

    @abstractmethod
    async def find_recent_sent(
        self,
        recipient: str,
        email_type: EmailType,
        content_hash: str,
        since: datetime,
        exclude_key: Optional[str] = None,
    ) -> Optional[IdempotencyRecord]:
        """Find a sent record with identical content sent at or after `since`."""
        pass

    # -------------------------------------------------------------------------
    # Send attempts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def count_attempts(self, idempotency_key: str) -> int:
        """Number of attempts recorded for a key."""
        pass

    @abstractmethod
    async def get_latest_attempt(self, idempotency_key: str) -> Optional[SendAttempt]:
        """Attempt with the highest attempt number for a key."""
        pass

    @abstractmethod
    async def insert_attempt(self, attempt: SendAttempt) -> Optional[int]:
        """
        Insert a pending attempt.

        Returns:
            The new attempt id, or None if (key, attempt_number) is taken.
        """
        pass

    @abstractmethod
    async def complete_attempt(
        self,
        attempt_id: int,
        status: SendStatus,
        error_message: Optional[str],
        completed_at: datetime,
    ) -> bool:
        """
        Finish a pending attempt.

        Returns:
            False if the attempt was already completed (attempts are append-only).
        """
        pass

    # -------------------------------------------------------------------------
    # Deduplication log
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_dedup_log(self, entry: DeduplicationLogEntry) -> int:
        """Append a deduplication log entry and return its id."""
        pass

    @abstractmethod
    async def list_dedup_logs(self, since: datetime, limit: int) -> List[DeduplicationLogEntry]:
        """Entries prevented at or after `since`, newest first."""
        pass

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_expired_keys(self, now: datetime, limit: int) -> List[str]:
        """Keys of records whose expires_at is strictly before `now`."""
        pass

    @abstractmethod
    async def delete_attempts_for(self, keys: Sequence[str]) -> int:
        """Delete every attempt belonging to the given keys."""
        pass

    @abstractmethod
    async def delete_records(self, keys: Sequence[str], now: datetime) -> int:
        """Delete the given records if they are still expired at `now`."""
        pass

    @abstractmethod
    async def delete_logs_before(self, cutoff: datetime) -> int:
        """Delete deduplication log entries prevented before `cutoff`."""
        pass

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_stats(self, since: datetime) -> DeliveryStats:
        """Aggregate counters for activity at or after `since`."""
        pass
