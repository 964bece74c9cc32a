"""Tenant context middleware.

Authentication happens upstream; the gateway forwards the already
authenticated family and user as ``x-tenant-id`` / ``x-user-id``.
"""

import logging

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

TENANT_HEADER = "x-tenant-id"
USER_HEADER = "x-user-id"
MAX_ID_LENGTH = 64


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Attach the trusted tenant and author to request state."""

    async def dispatch(self, request: Request, call_next):
        """Process request with tenant extraction."""
        if not request.url.path.startswith("/v1"):
            return await call_next(request)

        tenant_id = (request.headers.get(TENANT_HEADER) or "").strip()
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not tenant_id or not user_id:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": f"Missing tenant context. Provide {TENANT_HEADER} and {USER_HEADER} headers."},
            )
        if len(tenant_id) > MAX_ID_LENGTH or len(user_id) > MAX_ID_LENGTH:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": f"Tenant and user ids are limited to {MAX_ID_LENGTH} characters."},
            )

        request.state.tenant_id = tenant_id
        request.state.user_id = user_id

        logger.info(
            "Tenant request",
            extra={
                "tenant_id": tenant_id,
                "correlation_id": getattr(request.state, "correlation_id", None),
                "path": request.url.path,
            },
        )
        return await call_next(request)
