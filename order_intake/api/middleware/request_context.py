from __future__ import annotations

import logging
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from order_intake.ops.events import CORRELATION_ID_HEADER, correlation_scope

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

QUIET_PATHS = frozenset({"/health"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with a correlation id and logs control-surface calls."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        route = f"{request.method} {request.url.path}"
        start = perf_counter()
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as correlation_id:
            request.state.correlation_id = correlation_id
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "%s failed",
                    route,
                    extra={
                        "event_type": "api.request.failed",
                        "ops_payload": {"route": route, "duration_ms": int((perf_counter() - start) * 1000)},
                    },
                )
                raise

            response.headers["X-Request-Id"] = correlation_id
            if request.url.path not in QUIET_PATHS:
                duration_ms = int((perf_counter() - start) * 1000)
                logger.info(
                    "%s -> %d (%dms)",
                    route,
                    response.status_code,
                    duration_ms,
                    extra={
                        "event_type": "api.request.completed",
                        "ops_payload": {
                            "route": route,
                            "status_code": response.status_code,
                            "duration_ms": duration_ms,
                        },
                    },
                )
        return response
