"""
Memory Lane Backend — Request Logging Middleware
=================================================

What:  One access-log line per request with method, path, status, duration,
       request ID and client IP. Requests addressed to a single memory
       (/api/memories/{id}, /api/images/{id}) also carry its memory id.
How:   Measures wall time around call_next and picks the level from the
       status class: 5xx → ERROR, 4xx → WARNING, otherwise INFO.

Request bodies are never logged: they contain diary text and image bytes.
"""

import logging
import re
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from memorylane.middleware.request_id import request_id_var

logger = logging.getLogger("memorylane.access")

MEMORY_PATH = re.compile(r"/api/(?:memories|images)/([^/]+)/?")


def memory_id_from_path(path: str) -> Optional[str]:
    """The raw id segment of a per-memory path, unvalidated."""
    match = MEMORY_PATH.fullmatch(path)
    return match.group(1) if match else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs structured information about each HTTP request and response."""

    # Polled every few seconds by orchestrators
    QUIET_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path in self.QUIET_PATHS:
            return await call_next(request)

        memory_id = memory_id_from_path(path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s%s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            f" memory={memory_id}" if memory_id else "",
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "memory_id": memory_id,
            },
        )

        return response
