"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import core.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "description": "Mutual-follow gated real-time messaging",
        "identity_header": config.AUTH_USER_HEADER,
        "endpoints": {
            "health": "/health",
            "users": "/api/users",
            "messages": "/api/messages",
            "realtime": "/ws",
        },
    }
