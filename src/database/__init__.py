"""
Database layer for email delivery bookkeeping.

Async SQLAlchemy engine/session management, ORM tables and the repository
adapters behind domain.repositories.IDeliveryRepository.
"""

from .models import (
    Base,
    DeduplicationLogRecord,
    IdempotencyKeyRecord,
    SendAttemptRecord,
)
from .async_engine import (
    DatabaseHealth,
    close_database,
    create_engine,
    create_tables,
    get_async_engine,
    get_async_session_factory,
    get_session_factory,
    init_database,
)

__all__ = [
    "Base",
    "DeduplicationLogRecord",
    "IdempotencyKeyRecord",
    "SendAttemptRecord",
    "DatabaseHealth",
    "close_database",
    "create_engine",
    "create_tables",
    "get_async_engine",
    "get_async_session_factory",
    "get_session_factory",
    "init_database",
]
