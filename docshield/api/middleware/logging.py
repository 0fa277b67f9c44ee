"""Per-request JSON access log for the DocShield API.

Each request produces exactly one ``INFO`` record on this module's logger.
The record body is a JSON object::

    {"event": "http_request", "correlation_id": "...", "method": "POST",
     "path": "/v1/scan", "request_bytes": 48213, "status_code": 200,
     "duration_ms": 42.7}

``request_bytes`` is the declared ``Content-Length`` (``null`` when absent);
the body itself is never read here, so document text cannot leak into logs.
When a handler raises, the record is still written with status ``500``
before the exception propagates.

The correlation ID comes from ``X-Correlation-ID``, then ``X-Request-ID``,
else a new UUID4.  It is exposed as ``request.state.correlation_id`` and
returned in the ``X-Correlation-ID`` response header.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
_INBOUND_ID_HEADERS = ("x-correlation-id", "x-request-id")


def resolve_correlation_id(headers: Mapping[str, str]) -> str:
    for name in _INBOUND_ID_HEADERS:
        candidate = headers.get(name, "").strip()
        if candidate:
            return candidate
    return str(uuid.uuid4())


def declared_length(headers: Mapping[str, str]) -> int | None:
    value = headers.get("content-length", "")
    return int(value) if value.isdigit() else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Writes one JSON access-log record per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = resolve_correlation_id(request.headers)
        request.state.correlation_id = correlation_id
        started = time.perf_counter()

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                json.dumps(
                    {
                        "event": "http_request",
                        "correlation_id": correlation_id,
                        "method": request.method,
                        "path": request.url.path,
                        "request_bytes": declared_length(request.headers),
                        "status_code": status_code,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                )
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
