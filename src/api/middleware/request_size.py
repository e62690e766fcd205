"""Request body size limiting middleware."""

import logging
from typing import Callable

from fastapi import Request, Response, status

from src.api.middleware.error_handler import create_error_response
from src.core.config import get_settings

logger = logging.getLogger(__name__)


async def request_size_limit_middleware(
    request: Request,
    call_next: Callable[[Request], Response],
) -> Response:
    """Middleware to enforce request body size limits.

    Rejects requests whose Content-Length exceeds the configured maximum
    with 413, and malformed Content-Length headers with 400. Responses use
    the standard error body.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or an error response.
    """
    max_size = get_settings().max_request_body_size
    request_id = request.headers.get("X-Request-ID")

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            length = int(content_length)
        except ValueError:
            return create_error_response(
                error_type="invalid_request",
                message="Cabeçalho Content-Length inválido",
                status_code=status.HTTP_400_BAD_REQUEST,
                request_id=request_id,
            )

        if length > max_size:
            logger.warning(
                "Request body too large: %d bytes (max: %d) on %s",
                length,
                max_size,
                request.url.path,
            )
            return create_error_response(
                error_type="request_too_large",
                message=f"O corpo da requisição excede o limite de {max_size} bytes",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                request_id=request_id,
            )

    return await call_next(request)
