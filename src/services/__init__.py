"""
Services Module - application services for notification delivery.

- EmailDeliveryService: the send/stats/cleanup facade used by the rest of
  the application, the Celery tasks and the admin API
- logging_config: structured logging setup
"""

from .email_delivery_service import EmailDeliveryService


def build_delivery_service(provider=None, settings=None) -> EmailDeliveryService:
    """EmailDeliveryService backed by the configured SQL database."""
    from database.async_engine import get_async_session_factory
    from database.repositories import DeliveryRepository

    return EmailDeliveryService(
        DeliveryRepository(get_async_session_factory()),
        provider=provider,
        settings=settings,
    )


__all__ = [
    "EmailDeliveryService",
    "build_delivery_service",
]
