"""
causal_manifold/api/middleware.py

Custom ASGI middleware for CausalManifold.

RequestLoggingMiddleware
    Binds a request id into structlog's context variables for the lifetime
    of the request, echoes it in the X-Request-ID response header and logs
    method, path, status code and wall-clock duration.  A client-supplied
    X-Request-ID is reused.  Excluded from logging:
      - GET /health  (high-frequency liveness check)
      - GET /docs, /redoc, /openapi.json  (OpenAPI UI assets)
"""
from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Paths that generate too much noise to log on every call.
_SILENT_PATHS: frozenset[str] = frozenset(
    {"/health", "/docs", "/redoc", "/openapi.json"}
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its method, path, status and latency."""

    async def dispatch(self, request: Request, call_next: object) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response: Response = await call_next(request)  # type: ignore[arg-type]
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id

        if request.url.path not in _SILENT_PATHS:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                client=request.client.host if request.client else None,
            )

        structlog.contextvars.clear_contextvars()
        return response
