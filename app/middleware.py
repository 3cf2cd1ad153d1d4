"""
Middleware configuration for the standalone FastAPI app.
"""

from __future__ import annotations

import os
import uuid

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from core.context import (
    AuthContext,
    RequestContext,
    reset_current_request_context,
    set_current_request_context,
)

REQUEST_ID_HEADER = "x-request-id"


class RequestContextMiddleware:
    """
    ASGI middleware that tags each HTTP request with a request id and exposes
    it to services through a contextvar. The id is echoed back on the response.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = None
        for header_name, header_value in scope.get("headers", []):
            if header_name.decode("latin1").lower() == REQUEST_ID_HEADER:
                request_id = header_value.decode("latin1").strip()[:64] or None
                break
        request_id = request_id or uuid.uuid4().hex

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER.encode("latin1"), request_id.encode("latin1")))
                message = {**message, "headers": headers}
            await send(message)

        token = set_current_request_context(
            RequestContext(auth=AuthContext(actor="anonymous"), request_id=request_id, source="http")
        )
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            reset_current_request_context(token)


def configure_middleware(app):
    """Configure request context, host allowlist, and CORS middleware for the FastAPI app."""
    app.add_middleware(RequestContextMiddleware)

    # Optional host allowlist for production deployments
    trusted_hosts_env = os.environ.get("TRUSTED_HOSTS", "")
    trusted_hosts = [host.strip() for host in trusted_hosts_env.split(",") if host.strip()]
    if trusted_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=trusted_hosts,
        )

    # Add CORS middleware
    cors_allowed_env = os.environ.get("CORS_ALLOWED_ORIGINS", "")
    if cors_allowed_env.strip():
        allow_origins = [origin.strip() for origin in cors_allowed_env.split(",") if origin.strip()]
    else:
        allow_origins = [
            os.environ.get("FRONTEND_URL", "http://localhost:5173"),
            "http://localhost:5173",
        ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
