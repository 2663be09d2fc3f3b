"""FastAPI middleware."""

from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from mokuro_importer.core.tracing import trace_context

logger = structlog.get_logger("mokuro_importer.middleware")

TRACE_HEADER = "X-Trace-ID"


class TracingMiddleware(BaseHTTPMiddleware):
    """Run each request inside a trace context and echo the trace ID back."""

    async def dispatch(self, request: Request, call_next):
        """Bind the caller's X-Trace-ID (or a fresh one) around the request."""
        with trace_context(request.headers.get(TRACE_HEADER)) as trace_id:
            logger.debug("Processing request", method=request.method, path=request.url.path)

            response = await call_next(request)
            response.headers[TRACE_HEADER] = trace_id

            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
