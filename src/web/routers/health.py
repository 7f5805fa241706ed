"""
Health Check Endpoints

Provides:
1. /health/live - Simple liveness probe
2. /health/ready - Readiness probe (database reachable)
"""

import logging
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from database.async_engine import DatabaseHealth

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Application start time for uptime calculation
_start_time = datetime.utcnow()


@router.get("/health/live")
async def liveness():
    """Process is up."""
    return {
        "status": "alive",
        "uptime_seconds": int((datetime.utcnow() - _start_time).total_seconds()),
    }


@router.get("/health/ready")
async def readiness():
    """Ready when the delivery store answers."""
    database = await DatabaseHealth().check()
    if database["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "not_ready", "database": database})
    return {"status": "ready", "database": database}
