"""
FastAPI middleware for correlation ID propagation.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from debt_agent.core.logging import correlation_context, get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Bind a correlation ID to every request and echo it in the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())[:8]

        with correlation_context(correlation_id=correlation_id):
            start_time = time.monotonic()
            response = await call_next(request)
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                processing_time_ms=round((time.monotonic() - start_time) * 1000, 2),
            )

        response.headers["X-Correlation-ID"] = correlation_id
        return response
