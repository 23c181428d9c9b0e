"""Request context middleware: one ID per request, visible in every log line.

The ID comes from the caller's X-Request-ID header when present and is
otherwise generated.  It is stored in a ContextVar (async tasks share a
thread, so thread-locals would leak between requests) and copied onto
each LogRecord by a filter on the root logger.

The summary line is tagged with ``endpoint`` ("authorize" or "token")
when the protocol engine served the request, so OAuth traffic can be
told apart from the host's own routes without parsing paths.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        extra = {
            "request_id": req_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        endpoint = getattr(request.state, "oauth_endpoint", None)
        if endpoint is not None:
            extra["endpoint"] = endpoint

        # query strings are left out: they carry codes and client state
        logger.log(
            logging.ERROR if response.status_code >= 500 else logging.INFO,
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra=extra,
        )

        response.headers["X-Request-ID"] = req_id
        return response
