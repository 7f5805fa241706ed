"""
Celery App Configuration - Background task processing with Redis broker.

Configures Celery for:
- The daily email retention sweep (beat)

Usage:
    # Run worker
    celery -A tasks.celery_app worker --loglevel=info

    # Run with beat scheduler
    celery -A tasks.celery_app worker --beat --loglevel=info
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import (
    task_failure,
    task_postrun,
    task_prerun,
    worker_ready,
    worker_shutdown,
)

from config.settings import get_settings, CelerySettings, DeliverySettings, RedisSettings

logger = logging.getLogger(__name__)

EMAIL_RETENTION_TASK = "tasks.email_retention.cleanup_email_records"
EMAIL_RETENTION_SCHEDULE = "email-retention-sweep"


def build_beat_schedule(delivery_settings: DeliverySettings) -> Dict[str, Dict[str, Any]]:
    """Periodic tasks keyed by schedule entry name."""
    return {
        EMAIL_RETENTION_SCHEDULE: {
            "task": EMAIL_RETENTION_TASK,
            "schedule": crontab(
                hour=delivery_settings.cleanup_hour,
                minute=delivery_settings.cleanup_minute,
            ),
        },
    }


def create_celery_app(
    redis_settings: Optional[RedisSettings] = None,
    celery_settings: Optional[CelerySettings] = None,
    delivery_settings: Optional[DeliverySettings] = None,
) -> Celery:
    """
    Create and configure a Celery application.

    Args:
        redis_settings: Redis connection settings
        celery_settings: Celery configuration settings
        delivery_settings: Delivery policy (sweep time)

    Returns:
        Configured Celery application
    """
    settings = get_settings()
    redis_settings = redis_settings or settings.redis
    celery_settings = celery_settings or settings.celery
    delivery_settings = delivery_settings or settings.delivery

    # Build broker and backend URLs
    auth = f":{redis_settings.password}@" if redis_settings.password else ""
    protocol = "rediss" if redis_settings.ssl else "redis"
    base_url = f"{protocol}://{auth}{redis_settings.host}:{redis_settings.port}"

    app = Celery(
        "notification_delivery",
        broker=f"{base_url}/{celery_settings.broker_db}",
        backend=f"{base_url}/{celery_settings.result_db}",
        include=["tasks.email_retention"],
    )

    app.conf.update(
        # Serialization
        task_serializer=celery_settings.task_serializer,
        result_serializer=celery_settings.result_serializer,
        accept_content=celery_settings.accept_content,
        result_accept_content=celery_settings.accept_content,

        # Task acknowledgment
        task_acks_late=celery_settings.task_acks_late,
        worker_prefetch_multiplier=celery_settings.worker_prefetch_multiplier,

        # Time limits
        task_time_limit=celery_settings.task_time_limit,
        task_soft_time_limit=celery_settings.task_soft_time_limit,

        result_expires=3600,
        task_track_started=True,

        # Timezone
        timezone="UTC",
        enable_utc=True,

        beat_schedule=build_beat_schedule(delivery_settings),
    )

    return app


# Global Celery app instance
celery_app = create_celery_app()


@lru_cache
def get_celery_app() -> Celery:
    """Get the global Celery app instance."""
    return celery_app


class TaskBase(Task):
    """Base task class that logs outcomes."""

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure."""
        logger.error(
            f"Task {self.name}[{task_id}] failed: {exc}",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "exception": str(exc),
            },
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        """Handle task success."""
        logger.info(
            f"Task {self.name}[{task_id}] succeeded",
            extra={
                "task_id": task_id,
                "task_name": self.name,
            },
        )
        super().on_success(retval, task_id, args, kwargs)


# Register base task class
celery_app.Task = TaskBase


# Signal handlers for monitoring
@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    """Log when worker is ready."""
    logger.info(f"Celery worker ready: {sender}")


@worker_shutdown.connect
def on_worker_shutdown(sender, **kwargs):
    """Log when worker shuts down."""
    logger.info(f"Celery worker shutting down: {sender}")


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **other):
    """Log task start."""
    logger.debug(
        f"Task starting: {task.name}[{task_id}]",
        extra={"task_id": task_id, "task_name": task.name},
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **other):
    """Log task completion."""
    logger.debug(
        f"Task completed: {task.name}[{task_id}] state={state}",
        extra={"task_id": task_id, "task_name": task.name, "state": state},
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **other):
    """Log unhandled task failures with their traceback."""
    task = other.get("sender")
    logger.error(
        f"Task failure: {getattr(task, 'name', 'unknown')}[{task_id}]",
        extra={
            "task_id": task_id,
            "exception": str(exception),
            "traceback": str(traceback) if traceback else None,
        },
    )
