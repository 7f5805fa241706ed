"""
HTTP middleware for the operations API.

Request ID Middleware:
- Reuses an inbound X-Request-ID or generates one
- Exposes it to log formatters through request_id_var
- Echoes it in the response headers
"""

from datetime import datetime

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from services.logging_config import request_id_var


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a request ID into request state and log context."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or f"REQ-{datetime.utcnow().strftime('%Y%m%d%H%M%S%f')}"
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response
