"""Correlation ID and request logging middleware."""

import logging
import re
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"
# Forwarded ids end up in logs; anything else is replaced
_VALID_ID = re.compile(r"[A-Za-z0-9._-]{1,128}")


def resolve_correlation_id(value: Optional[str]) -> str:
    """Inbound id when well-formed, otherwise a fresh UUID."""
    if value and _VALID_ID.fullmatch(value):
        return value
    return str(uuid.uuid4())


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id
        start = time.monotonic()

        response: Response = await call_next(request)

        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "correlation_id": correlation_id,
                "tenant_id": getattr(request.state, "tenant_id", None),
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        return response
