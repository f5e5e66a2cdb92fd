"""Request correlation IDs, propagated into every log line of the request."""

import logging
import re
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

HEADER = "X-Correlation-ID"

# Client-supplied ids are echoed into logs and headers, so keep them short and plain
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Current request's correlation ID, or "" outside a request."""
    return correlation_id_var.get()


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:16]


class CorrelationIDFilter(logging.Filter):
    """Stamp ``record.correlation_id`` so formatters can include it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Reuse the caller's X-Correlation-ID when it is well formed, otherwise
    mint one; expose it on the response and to the logging filter.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(HEADER, "")
        if not _VALID_ID.match(correlation_id):
            correlation_id = generate_correlation_id()

        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
            response.headers[HEADER] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)
