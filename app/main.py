"""
Standalone FastAPI app wiring for ChatGate.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import core.config as config
from core.context import current_request_id
from core.db import dispose_db, init_db
from core.errors import ServiceError
from core.services.media_store import build_uploader_from_config
from core.services.presence import InMemoryPresenceRegistry
from app.middleware import configure_middleware
from app.routes.health import router as health_router
from app.routes.messages import router as messages_router
from app.routes.realtime import router as realtime_router
from app.routes.root import router as root_router
from app.routes.users import router as users_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    init_db()
    app.state.presence = InMemoryPresenceRegistry()
    app.state.uploader = build_uploader_from_config()
    try:
        yield
    finally:
        await app.state.presence.close()
        await app.state.uploader.aclose()
        dispose_db()


def _error_body(code: str, message: str) -> dict:
    return {"error": code, "message": message}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, str(exc)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", f"{field}: {first.get('msg', 'invalid request')}"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        config.logger.error(
            "unhandled_error",
            exc_info=exc,
            extra={"path": request.url.path, "request_id": current_request_id()},
        )
        return JSONResponse(status_code=500, content=_error_body("internal_error", "Internal server error"))


app = FastAPI(title=config.SERVICE_NAME, version=config.SERVICE_VERSION, redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)
register_exception_handlers(app)

# Health and root endpoints
app.include_router(health_router)
app.include_router(root_router)

# REST and real-time surfaces
app.include_router(users_router)
app.include_router(messages_router)
app.include_router(realtime_router)
