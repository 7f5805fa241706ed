"""Async Delivery Repository Implementation.

Implements IDeliveryRepository using SQLAlchemy async sessions.
Every method runs in its own short transaction so that each decision made
by the delivery service is committed, and visible to other instances,
before the next step starts.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from sqlalchemy import and_, case, delete, distinct, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import (
    DeduplicationLogRecord,
    IdempotencyKeyRecord,
    SendAttemptRecord,
)
from domain.delivery import (
    DeduplicationLogEntry,
    DeliveryStats,
    EmailType,
    IdempotencyRecord,
    SendAttempt,
    SendStatus,
)
from domain.repositories import IDeliveryRepository
from notifications.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

KEYS = IdempotencyKeyRecord.__table__
ATTEMPTS = SendAttemptRecord.__table__
DEDUP_LOG = DeduplicationLogRecord.__table__

_UPSERT_DIALECTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class DeliveryRepository(IDeliveryRepository):
    """
    Async implementation of IDeliveryRepository.

    Insert-if-absent uses ON CONFLICT DO NOTHING on SQLite and PostgreSQL;
    other dialects fall back to a savepoint and the unique constraint.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository with a session factory.

        Args:
            session_factory: Factory producing SQLAlchemy async sessions.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session, commit on success and map driver errors."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Delivery store operation failed: {e}")
            raise StoreUnavailableError(str(e)) from e
        except OSError as e:
            logger.error(f"Delivery store unreachable: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def _insert_ignoring_conflict(
        self,
        session: AsyncSession,
        table,
        values: Dict[str, Any],
        conflict_columns: List[str],
        returning=None,
    ):
        """
        Insert a row unless it violates the given unique columns.

        Returns:
            (inserted, returned_value)
        """
        dialect = session.get_bind().dialect.name
        dialect_insert = _UPSERT_DIALECTS.get(dialect)

        if dialect_insert is not None:
            stmt = dialect_insert(table).values(**values).on_conflict_do_nothing(
                index_elements=conflict_columns
            )
            if returning is not None:
                row = (await session.execute(stmt.returning(returning))).first()
                return row is not None, row[0] if row else None
            result = await session.execute(stmt)
            return result.rowcount == 1, None

        try:
            async with session.begin_nested():
                result = await session.execute(insert(table).values(**values))
        except IntegrityError:
            return False, None
        returned = result.inserted_primary_key[0] if returning is not None else None
        return True, returned

    # -------------------------------------------------------------------------
    # Idempotency records
    # -------------------------------------------------------------------------

    async def insert_if_absent(self, record: IdempotencyRecord) -> bool:
        values = {
            "idempotency_key": record.idempotency_key,
            "email_type": record.email_type.value,
            "recipient_email": record.recipient,
            "content_hash": record.content_hash,
            "status": record.status.value,
            "sent_at": record.sent_at,
            "metadata": record.metadata or {},
            "expires_at": record.expires_at,
            "created_at": record.created_at,
        }
        async with self._transaction() as session:
            inserted, _ = await self._insert_ignoring_conflict(
                session, KEYS, values, ["idempotency_key"]
            )

        if not inserted:
            logger.debug(f"Idempotency key already present: {record.idempotency_key}")
        return inserted

    async def get_record(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(KEYS).where(KEYS.c.idempotency_key == idempotency_key)
            )
            row = result.mappings().first()

        return self._row_to_record(row) if row else None

    async def transition_status(
        self,
        idempotency_key: str,
        from_status: SendStatus,
        to_status: SendStatus,
        sent_at: Optional[datetime] = None,
    ) -> bool:
        values: Dict[str, Any] = {"status": to_status.value}
        if sent_at is not None:
            values["sent_at"] = sent_at

        async with self._transaction() as session:
            result = await session.execute(
                update(KEYS)
                .where(and_(
                    KEYS.c.idempotency_key == idempotency_key,
                    KEYS.c.status == from_status.value,
                ))
                .values(**values)
            )
            return result.rowcount == 1

    async def delete_record(self, idempotency_key: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(KEYS).where(KEYS.c.idempotency_key == idempotency_key)
            )
            return result.rowcount > 0

    async def find_recent_sent(
        self,
        recipient: str,
        email_type: EmailType,
        content_hash: str,
        since: datetime,
        exclude_key: Optional[str] = None,
    ) -> Optional[IdempotencyRecord]:
        conditions = [
            KEYS.c.recipient_email == recipient,
            KEYS.c.email_type == email_type.value,
            KEYS.c.content_hash == content_hash,
            KEYS.c.status == SendStatus.SENT.value,
            KEYS.c.sent_at >= since,
        ]
        if exclude_key is not None:
            conditions.append(KEYS.c.idempotency_key != exclude_key)

        async with self._transaction() as session:
            result = await session.execute(
                select(KEYS)
                .where(and_(*conditions))
                .order_by(KEYS.c.sent_at.desc())
                .limit(1)
            )
            row = result.mappings().first()

        return self._row_to_record(row) if row else None

    # -------------------------------------------------------------------------
    # Send attempts
    # -------------------------------------------------------------------------

    async def count_attempts(self, idempotency_key: str) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                select(func.count()).select_from(ATTEMPTS)
                .where(ATTEMPTS.c.idempotency_key == idempotency_key)
            )
            return int(result.scalar() or 0)

    async def get_latest_attempt(self, idempotency_key: str) -> Optional[SendAttempt]:
        async with self._transaction() as session:
            result = await session.execute(
                select(ATTEMPTS)
                .where(ATTEMPTS.c.idempotency_key == idempotency_key)
                .order_by(ATTEMPTS.c.attempt_number.desc())
                .limit(1)
            )
            row = result.mappings().first()

        return self._row_to_attempt(row) if row else None

    async def insert_attempt(self, attempt: SendAttempt) -> Optional[int]:
        values = {
            "idempotency_key": attempt.idempotency_key,
            "attempt_number": attempt.attempt_number,
            "status": attempt.status.value,
            "error_message": attempt.error_message,
            "attempted_at": attempt.attempted_at,
            "completed_at": attempt.completed_at,
        }
        async with self._transaction() as session:
            inserted, attempt_id = await self._insert_ignoring_conflict(
                session,
                ATTEMPTS,
                values,
                ["idempotency_key", "attempt_number"],
                returning=ATTEMPTS.c.id,
            )

        return attempt_id if inserted else None

    async def complete_attempt(
        self,
        attempt_id: int,
        status: SendStatus,
        error_message: Optional[str],
        completed_at: datetime,
    ) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                update(ATTEMPTS)
                .where(and_(
                    ATTEMPTS.c.id == attempt_id,
                    ATTEMPTS.c.status == SendStatus.PENDING.value,
                ))
                .values(
                    status=status.value,
                    error_message=error_message,
                    completed_at=completed_at,
                )
            )
            return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Deduplication log
    # -------------------------------------------------------------------------

    async def add_dedup_log(self, entry: DeduplicationLogEntry) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                insert(DEDUP_LOG).values(
                    recipient_email=entry.recipient,
                    email_type=entry.email_type.value,
                    content_hash=entry.content_hash,
                    original_idempotency_key=entry.original_key,
                    duplicate_idempotency_key=entry.duplicate_key,
                    prevented_at=entry.prevented_at,
                    metadata=entry.metadata or {},
                )
            )
            return result.inserted_primary_key[0]

    async def list_dedup_logs(self, since: datetime, limit: int) -> List[DeduplicationLogEntry]:
        async with self._transaction() as session:
            result = await session.execute(
                select(DEDUP_LOG)
                .where(DEDUP_LOG.c.prevented_at >= since)
                .order_by(DEDUP_LOG.c.prevented_at.desc(), DEDUP_LOG.c.id.desc())
                .limit(limit)
            )
            rows = result.mappings().all()

        return [self._row_to_log(row) for row in rows]

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    async def list_expired_keys(self, now: datetime, limit: int) -> List[str]:
        async with self._transaction() as session:
            result = await session.execute(
                select(KEYS.c.idempotency_key)
                .where(KEYS.c.expires_at < now)
                .order_by(KEYS.c.expires_at)
                .limit(limit)
            )
            return [row[0] for row in result.fetchall()]

    async def delete_attempts_for(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        async with self._transaction() as session:
            result = await session.execute(
                delete(ATTEMPTS).where(ATTEMPTS.c.idempotency_key.in_(list(keys)))
            )
            return result.rowcount or 0

    async def delete_records(self, keys: Sequence[str], now: datetime) -> int:
        if not keys:
            return 0
        async with self._transaction() as session:
            result = await session.execute(
                delete(KEYS).where(and_(
                    KEYS.c.idempotency_key.in_(list(keys)),
                    KEYS.c.expires_at < now,
                ))
            )
            return result.rowcount or 0

    async def delete_logs_before(self, cutoff: datetime) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                delete(DEDUP_LOG).where(DEDUP_LOG.c.prevented_at < cutoff)
            )
            return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    async def get_stats(self, since: datetime) -> DeliveryStats:
        async with self._transaction() as session:
            key_row = (await session.execute(
                select(
                    func.count(case((KEYS.c.status == SendStatus.SENT.value, 1))),
                    func.count(case((KEYS.c.status == SendStatus.FAILED.value, 1))),
                    func.count(distinct(KEYS.c.recipient_email)),
                ).where(KEYS.c.created_at >= since)
            )).first()

            duplicates = (await session.execute(
                select(func.count()).select_from(DEDUP_LOG)
                .where(DEDUP_LOG.c.prevented_at >= since)
            )).scalar()

            retries = (await session.execute(
                select(func.count()).select_from(ATTEMPTS)
                .where(and_(
                    ATTEMPTS.c.attempted_at >= since,
                    ATTEMPTS.c.attempt_number > 1,
                ))
            )).scalar()

        return DeliveryStats(
            total_sent=int(key_row[0] or 0),
            total_failed=int(key_row[1] or 0),
            duplicates_prevented=int(duplicates or 0),
            retry_attempts=int(retries or 0),
            unique_recipients=int(key_row[2] or 0),
        )

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row) -> IdempotencyRecord:
        return IdempotencyRecord(
            idempotency_key=row["idempotency_key"],
            email_type=EmailType(row["email_type"]),
            recipient=row["recipient_email"],
            content_hash=row["content_hash"],
            status=SendStatus(row["status"]),
            sent_at=row["sent_at"],
            metadata=row["metadata"] or {},
            expires_at=row["expires_at"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_attempt(row) -> SendAttempt:
        return SendAttempt(
            id=row["id"],
            idempotency_key=row["idempotency_key"],
            attempt_number=row["attempt_number"],
            status=SendStatus(row["status"]),
            error_message=row["error_message"],
            attempted_at=row["attempted_at"],
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _row_to_log(row) -> DeduplicationLogEntry:
        return DeduplicationLogEntry(
            id=row["id"],
            recipient=row["recipient_email"],
            email_type=EmailType(row["email_type"]),
            content_hash=row["content_hash"],
            original_key=row["original_idempotency_key"],
            duplicate_key=row["duplicate_idempotency_key"],
            prevented_at=row["prevented_at"],
            metadata=row["metadata"] or {},
        )
