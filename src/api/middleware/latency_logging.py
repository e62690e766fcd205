"""Request latency logging middleware."""

import logging
import re
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds)
SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

# Stripe can take a few seconds on checkout creation and reconciliation
GATEWAY_PATH_PREFIXES = ("/api/v1/checkout", "/api/v1/webhooks")

HEALTH_PATHS = ("/health", "/health/ready")

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def normalize_path(path: str) -> str:
    """Replace UUID path segments with ``{id}`` so log lines group by route."""
    return _UUID_RE.sub("{id}", path)


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Slow requests are logged at warning or error level. Requests that talk
    to the payment gateway get a doubled threshold. Health checks are only
    logged at debug level.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler, with an X-Response-Time header.
    """
    start_time = time.perf_counter()
    method = request.method
    path = normalize_path(request.url.path)
    is_health_check = request.url.path in HEALTH_PATHS

    slow_ms = SLOW_REQUEST_THRESHOLD_MS
    very_slow_ms = VERY_SLOW_REQUEST_THRESHOLD_MS
    if request.url.path.startswith(GATEWAY_PATH_PREFIXES):
        slow_ms *= 2
        very_slow_ms *= 2

    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        if response is not None:
            response.headers["X-Response-Time"] = f"{latency_ms:.2f}ms"

        log_msg = "%s %s - %d - %.2fms"
        args = (method, path, status_code, latency_ms)

        if is_health_check:
            logger.debug(log_msg, *args)
        elif status_code >= 500:
            logger.error(log_msg, *args)
        elif latency_ms > very_slow_ms:
            logger.error("VERY SLOW REQUEST: " + log_msg, *args)
        elif latency_ms > slow_ms:
            logger.warning("SLOW REQUEST: " + log_msg, *args)
        elif status_code >= 400:
            logger.warning(log_msg, *args)
        else:
            logger.info(log_msg, *args)
