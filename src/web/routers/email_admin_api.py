"""
Email Delivery Operations API.

Provides endpoints for operators to:
- View delivery statistics over a trailing window
- Trigger the retention sweep on demand
- Inspect recently prevented duplicate emails

Authentication is not applied here; the host application mounts this
router with its own ``dependencies=[...]``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from services.email_delivery_service import EmailDeliveryService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/communications",
    tags=["Email Operations"],
)

_delivery_service: Optional[EmailDeliveryService] = None


def get_delivery_service() -> EmailDeliveryService:
    """Process-wide EmailDeliveryService on the configured database."""
    global _delivery_service
    if _delivery_service is None:
        from services import build_delivery_service
        _delivery_service = build_delivery_service()
    return _delivery_service


def reset_delivery_service() -> None:
    """Drop the cached service (on shutdown, once the engine is disposed)."""
    global _delivery_service
    _delivery_service = None


@router.get("/email-stats")
async def get_email_stats(
    hours: int = Query(24, ge=1, le=24 * 30, description="Trailing window in hours"),
    service: EmailDeliveryService = Depends(get_delivery_service),
):
    """Delivery counters for the last ``hours`` hours."""
    try:
        stats = await service.get_stats(hours)
    except Exception as e:
        logger.exception(f"Error fetching email stats: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to get email statistics"},
        )

    return {
        "success": True,
        "timeframe": f"{hours} hours",
        "stats": stats.to_dict(),
    }


@router.post("/email-cleanup")
async def run_email_cleanup(
    service: EmailDeliveryService = Depends(get_delivery_service),
):
    """Run the retention sweep now."""
    try:
        result = await service.run_cleanup_now()
    except Exception as e:
        logger.exception(f"Manual email cleanup failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to run email cleanup"},
        )

    logger.info(f"Manual email cleanup completed: {result.to_dict()}")
    return {
        "success": True,
        "message": "Email cleanup completed successfully",
        "result": result.to_dict(),
    }


@router.get("/email-deduplication-logs")
async def get_deduplication_logs(
    hours: int = Query(24, ge=1, le=24 * 30, description="Trailing window in hours"),
    limit: int = Query(50, ge=1, le=500, description="Maximum entries returned"),
    service: EmailDeliveryService = Depends(get_delivery_service),
):
    """Prevented duplicates, newest first."""
    try:
        logs = await service.list_deduplication_logs(hours, limit)
    except Exception as e:
        logger.exception(f"Error fetching deduplication logs: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to get deduplication logs"},
        )

    return {
        "success": True,
        "logs": [entry.to_dict() for entry in logs],
        "count": len(logs),
        "timeframe": f"{hours} hours",
    }
