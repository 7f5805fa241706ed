"""
FastAPI Routers.

- email_admin_api: email delivery stats, cleanup and deduplication logs
- health: liveness and database readiness
"""

from .email_admin_api import router as email_admin_router
from .health import router as health_router

__all__ = [
    "email_admin_router",
    "health_router",
]
