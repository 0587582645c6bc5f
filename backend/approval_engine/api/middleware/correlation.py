"""
Correlation ID Middleware

Tags every request with a correlation ID and logs its outcome.
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import get_logger, set_correlation_id
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)

# Probes would otherwise flood the request log
_QUIET_PATHS = frozenset({"/health", "/"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds correlation ID to all requests.

    The caller's X-Correlation-Id is reused when present, so a request can
    be followed from the gateway through the engine's log lines.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-Id") or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Correlation-Id"] = correlation_id

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
                extra={
                    "actor_id": request.headers.get("X-User-Id"),
                    "organization_id": request.headers.get("X-Organization-Id"),
                }
            )

        return response
