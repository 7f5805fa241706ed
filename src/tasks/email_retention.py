"""
Email Retention Celery Tasks.

Daily sweep of email delivery bookkeeping:
- Expired idempotency keys and their send attempts
- Deduplication log entries past the log retention period

The beat entry lives in tasks.celery_app. A failed run is logged and
returns empty counts; the next scheduled run is unaffected.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict, Optional

from celery import shared_task

from config.database import DatabaseSettings
from config.settings import DeliverySettings, get_delivery_settings
from database.async_engine import create_engine, create_tables, get_session_factory
from database.repositories import DeliveryRepository
from domain.delivery import CleanupResult
from notifications.email_provider import NullEmailProvider
from services.email_delivery_service import EmailDeliveryService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _delivery_service(
    db_settings: Optional[DatabaseSettings] = None,
) -> AsyncGenerator[EmailDeliveryService, None]:
    """
    Service on a private engine.

    Each task run gets its own event loop (asyncio.run), so it cannot share
    the web process's engine; the engine is disposed on exit.
    """
    engine = create_engine(db_settings)
    try:
        await create_tables(engine)
        repository = DeliveryRepository(get_session_factory(engine))
        # The sweep never sends mail
        yield EmailDeliveryService(repository, provider=NullEmailProvider())
    finally:
        await engine.dispose()


async def _sweep(log_stats: bool) -> CleanupResult:
    async with _delivery_service() as service:
        result = await service.run_cleanup_now()

        if log_stats:
            stats = await service.get_stats(24)
            logger.info(
                f"Email stats (last 24h): {stats.total_sent} sent, "
                f"{stats.total_failed} failed, {stats.duplicates_prevented} duplicates prevented, "
                f"{stats.retry_attempts} retries, {stats.unique_recipients} unique recipients",
                extra=stats.to_dict(),
            )

    return result


@shared_task(name="tasks.email_retention.cleanup_email_records")
def cleanup_email_records() -> Dict[str, int]:
    """
    Scheduled retention sweep.

    Runs daily at the configured cleanup time. Never raises.
    """
    started = datetime.utcnow()
    try:
        result = asyncio.run(_sweep(log_stats=True))
    except Exception as e:
        logger.error(f"Scheduled email cleanup failed: {e}", exc_info=True)
        return CleanupResult().to_dict()

    duration = (datetime.utcnow() - started).total_seconds()
    logger.info(f"Scheduled email cleanup completed in {duration:.2f}s: {result.to_dict()}")
    return result.to_dict()


def run_cleanup_now() -> Dict[str, int]:
    """
    Manual cleanup for operational tooling.

    Unlike the scheduled task this raises on failure so the operator sees it.
    """
    logger.info("Manual email cleanup triggered")
    return asyncio.run(_sweep(log_stats=False)).to_dict()


def get_cleanup_schedule(
    settings: Optional[DeliverySettings] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Describe the configured daily sweep and when it next runs (UTC)."""
    from tasks.celery_app import EMAIL_RETENTION_SCHEDULE, get_celery_app

    settings = settings or get_delivery_settings()
    now = now or datetime.utcnow()

    next_run = now.replace(
        hour=settings.cleanup_hour,
        minute=settings.cleanup_minute,
        second=0,
        microsecond=0,
    )
    if next_run <= now:
        next_run += timedelta(days=1)

    return {
        "task": cleanup_email_records.name,
        "scheduled": EMAIL_RETENTION_SCHEDULE in get_celery_app().conf.beat_schedule,
        "schedule": f"daily at {settings.cleanup_hour:02d}:{settings.cleanup_minute:02d} UTC",
        "next_run": next_run.isoformat(),
        "ttl_hours": settings.ttl_hours,
        "log_retention_days": settings.log_retention_days,
    }
