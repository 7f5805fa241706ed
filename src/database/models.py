"""
SQLAlchemy ORM Models for outbound email delivery bookkeeping.

Tables:
- email_idempotency_keys: one row per logical send, keyed by idempotency key
- email_send_attempts: one row per transport call, unique per (key, attempt)
- email_deduplication_log: audit trail of suppressed content duplicates

The unique constraints here are load-bearing: they are what lets exactly
one of several concurrent writers win a key or an attempt slot.
"""

from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Index, UniqueConstraint,
    CheckConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


class IdempotencyKeyRecord(Base):
    """
    Idempotency record - at most one row per idempotency key.

    Once status is 'sent' the row is only ever removed by the retention sweep.
    """
    __tablename__ = "email_idempotency_keys"

    idempotency_key = Column(String(255), primary_key=True)
    email_type = Column(String(32), nullable=False)
    recipient_email = Column(String(320), nullable=False)
    content_hash = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    sent_at = Column(DateTime, nullable=True)
    metadata_json = Column("metadata", JSONB, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'sent', 'failed')", name='ck_idempotency_status'),
        Index('ix_email_idempotency_expires', 'expires_at'),
        Index('ix_email_idempotency_content', 'recipient_email', 'email_type', 'content_hash', 'status'),
        Index('ix_email_idempotency_created', 'created_at'),
    )

    def __repr__(self):
        return f"<IdempotencyKey(key={self.idempotency_key}, status={self.status})>"


class SendAttemptRecord(Base):
    """Send attempt - append-only, one row per transport call."""
    __tablename__ = "email_send_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idempotency_key = Column(String(255), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    error_message = Column(Text, nullable=True)
    attempted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('idempotency_key', 'attempt_number', name='uq_send_attempt_slot'),
        CheckConstraint('attempt_number >= 1', name='ck_attempt_number_positive'),
        Index('ix_email_attempts_attempted', 'attempted_at'),
    )

    def __repr__(self):
        return (
            f"<SendAttempt(key={self.idempotency_key}, "
            f"n={self.attempt_number}, status={self.status})>"
        )


class DeduplicationLogRecord(Base):
    """Suppressed duplicate - kept for a fixed retention period."""
    __tablename__ = "email_deduplication_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_email = Column(String(320), nullable=False)
    email_type = Column(String(32), nullable=False)
    content_hash = Column(String(64), nullable=False)
    original_idempotency_key = Column(String(255), nullable=False)
    duplicate_idempotency_key = Column(String(255), nullable=False)
    prevented_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    metadata_json = Column("metadata", JSONB, nullable=True)

    __table_args__ = (
        Index('ix_email_dedup_prevented', 'prevented_at'),
    )

    def __repr__(self):
        return f"<DedupLog(original={self.original_idempotency_key}, duplicate={self.duplicate_idempotency_key})>"
