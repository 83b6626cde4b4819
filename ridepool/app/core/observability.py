"""
Observability Middleware.

Adds correlation IDs and structured logging context to requests. Ride and
request ids from the matched route are added to the log line so one ride's
history can be followed across drivers and passengers.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("ridepool.http")

CORRELATION_HEADER = "X-Correlation-ID"
TRACKED_PATH_PARAMS = ("ride_id", "request_id")


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def ride_context(request: Request) -> dict:
    """Ride/request ids the router matched for ``request``, if any."""
    path_params = request.scope.get("path_params") or {}
    return {name: path_params[name] for name in TRACKED_PATH_PARAMS if name in path_params}


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers[CORRELATION_HEADER] = correlation_id

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            **ride_context(request),
        }

        # 409s are expected outcomes of the booking state machine
        if response.status_code >= 500:
            logger.error("Ride API request failed", extra=log_data)
        elif response.status_code >= 400 and response.status_code != 409:
            logger.warning("Ride API request rejected", extra=log_data)
        else:
            logger.info("Ride API request", extra=log_data)

        return response
