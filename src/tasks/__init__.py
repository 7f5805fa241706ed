"""
Background Tasks Module - Celery-based periodic processing.

Provides:
- Celery app configuration with Redis broker and beat schedule
- Daily email retention sweep and its manual trigger
"""

from .celery_app import celery_app, get_celery_app
from .email_retention import (
    cleanup_email_records,
    get_cleanup_schedule,
    run_cleanup_now,
)

__all__ = [
    # Celery app
    "celery_app",
    "get_celery_app",
    # Email retention
    "cleanup_email_records",
    "get_cleanup_schedule",
    "run_cleanup_now",
]
