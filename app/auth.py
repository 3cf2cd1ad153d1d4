"""
Request identity for the standalone FastAPI app.

Credentials are checked upstream (login, sessions, OTP); requests reach this
service with the authenticated user id in a trusted header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

import core.config as config
from core.errors import AuthenticationRequired
from core.models import User
from core.services.shared import run_read


def header_identity(headers) -> Optional[str]:
    value = headers.get(config.AUTH_USER_HEADER)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_user(user_id: Optional[str]) -> User:
    """Load the user a request claims to be; unknown ids are not authenticated."""
    if not user_id:
        raise AuthenticationRequired("Authentication required")
    user = run_read(lambda db: db.get(User, user_id))
    if user is None:
        raise AuthenticationRequired("Unknown user", code="unknown_identity")
    return user


def get_current_user(request: Request) -> User:
    return resolve_user(header_identity(request.headers))
