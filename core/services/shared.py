"""
Shared helpers and configuration for chat services.
"""

from __future__ import annotations

import inspect
from functools import wraps
from typing import Any, Callable, Iterable, Optional, TypeVar

from sqlalchemy.orm.exc import StaleDataError

import core.config as config
from core.context import current_request_id
from core.db import DB
from core.errors import ConflictIssue, InternalFailure, NotFoundIssue, ServiceError
from core.models import Message, User

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

GRAPH_WRITE_RETRY_MAX = config.GRAPH_WRITE_RETRY_MAX

T = TypeVar("T")


# =============================================================================
# Sessions & optimistic concurrency
# =============================================================================

def open_session():
    if DB.SessionLocal is None:
        raise InternalFailure("Database not initialized")
    return DB.SessionLocal()


def run_read(fn: Callable[..., T]) -> T:
    """Run a read-only unit of work in its own session."""
    db = open_session()
    try:
        return fn(db)
    finally:
        db.close()


def run_graph_write(operation: str, fn: Callable[..., T]) -> T:
    """
    Run a read-modify-write over one or more user documents in a single
    transaction.

    User rows are versioned; a concurrent writer on the same row makes the
    flush raise StaleDataError, in which case the whole unit is re-read and
    re-applied up to GRAPH_WRITE_RETRY_MAX times.
    """
    for attempt in range(GRAPH_WRITE_RETRY_MAX + 1):
        db = open_session()
        try:
            result = fn(db)
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            if attempt >= GRAPH_WRITE_RETRY_MAX:
                logger.warning(
                    "graph_write_conflict_exhausted",
                    extra={"operation": operation, "attempts": attempt + 1},
                )
                raise ConflictIssue(
                    "Concurrent update, please retry",
                    code="concurrent_update",
                )
            logger.info(
                "graph_write_conflict_retry",
                extra={"operation": operation, "attempt": attempt + 1},
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    raise InternalFailure("graph write did not complete")


def load_user(db, user_id: str, *, field: str = "user_id") -> User:
    user = db.get(User, user_id) if user_id else None
    if user is None:
        raise NotFoundIssue("User not found", code="user_not_found", data={"field": field})
    return user


# =============================================================================
# Edge-set helpers (JSON lists are replaced, never mutated in place)
# =============================================================================

def with_member(values: Optional[Iterable[str]], member: str) -> list[str]:
    items = list(values or [])
    if member not in items:
        items.append(member)
    return items


def without_member(values: Optional[Iterable[str]], member: str) -> list[str]:
    return [item for item in (values or []) if item != member]


# =============================================================================
# Serialization
# =============================================================================

def user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "handle": user.handle,
        "full_name": user.full_name,
        "profile_pic": user.profile_pic or "",
    }


def serialize_user(user: User) -> dict:
    return {
        **user_summary(user),
        "email": user.email,
        "bio": user.bio or "",
        "birthday": user.birthday.isoformat() if user.birthday else None,
        "is_email_verified": bool(user.is_email_verified),
        "followers": list(user.followers or []),
        "following": list(user.following or []),
        "followers_count": len(user.followers or []),
        "following_count": len(user.following or []),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def serialize_message(message: Message) -> dict:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "text": message.text,
        "image": message.image,
        "status": message.status.value if message.status else None,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


# =============================================================================
# Error logging
# =============================================================================

def _log_service_error(operation: str, exc: ServiceError) -> None:
    payload = {
        "operation": operation,
        "error_code": exc.code,
        "status_code": exc.status_code,
        "detail": str(exc),
        "request_id": current_request_id(),
    }
    if exc.status_code >= 500:
        logger.warning("service_error", extra=payload)
    else:
        logger.info("service_error", extra=payload)


def service_operation(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Log taxonomy errors raised by a service operation and re-raise them."""
    if inspect.iscoroutinefunction(fn):
        @wraps(fn)
        async def async_wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except ServiceError as exc:
                _log_service_error(fn.__name__, exc)
                raise
        return async_wrapper

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ServiceError as exc:
            _log_service_error(fn.__name__, exc)
            raise
    return wrapper
