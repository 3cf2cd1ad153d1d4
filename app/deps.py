"""
Dependency helpers for the standalone FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends
from starlette.requests import HTTPConnection

from core.context import AuthContext
from core.errors import InternalFailure
from core.services.media_store import MediaUploader
from core.services.presence import PresenceRegistry
from app.auth import get_current_user


def get_presence(connection: HTTPConnection) -> PresenceRegistry:
    presence = getattr(connection.app.state, "presence", None)
    if presence is None:
        raise InternalFailure("Presence registry not initialized")
    return presence


def get_uploader(connection: HTTPConnection) -> MediaUploader | None:
    return getattr(connection.app.state, "uploader", None)


async def get_auth_context(
    user=Depends(get_current_user),
) -> AuthContext:
    return AuthContext(user_id=user.id, actor=user.handle)
