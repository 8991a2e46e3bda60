"""
Request id middleware.

Binds ``request_id`` and ``correlation_id`` into structlog's contextvars for
the duration of the request (every log line carries them), echoes them back
as response headers, and logs one ``request_completed`` event per request.
"""
from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"


def _route_template(request: Request) -> str:
    # "/users/{user_id}/billing-summary" rather than the concrete path
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        # Upstream callers (HubSpot retries, the back office) may pin a correlation id
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or request_id

        started = time.perf_counter()
        status_code = 500
        with structlog.contextvars.bound_contextvars(
            request_id=request_id, correlation_id=correlation_id,
        ):
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                logger.info(
                    "request_completed",
                    method=request.method,
                    path_template=_route_template(request),
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
