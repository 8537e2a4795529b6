"""Correlation id per request: echoed when the client sends a valid one, generated otherwise."""

import logging
import uuid
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"


def resolve_correlation_id(raw: str | None) -> str:
    """Only canonical UUID strings are trusted; anything else (header injection, junk) is replaced."""
    if raw and len(raw) == 36:
        try:
            if str(uuid.UUID(raw)) == raw.lower():
                return raw
        except ValueError:
            pass
    return str(uuid.uuid4())


def correlation_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id
        logger.debug(f"{request.method} {request.url.path} correlation_id={correlation_id}")
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    return middleware
