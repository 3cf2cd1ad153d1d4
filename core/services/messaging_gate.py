"""
Messaging gate: may two users exchange direct messages?

The answer is always recomputed from freshly loaded user rows; nothing about
mutual follow is cached or stored.
"""

from __future__ import annotations

from typing import Optional

from core.errors import PermissionDenied
from core.models import User


def is_mutual_follow(user_a: Optional[User], user_b: Optional[User]) -> bool:
    """True iff each user lists the other in its following set."""
    if user_a is None or user_b is None or user_a.id == user_b.id:
        return False
    return user_b.id in (user_a.following or []) and user_a.id in (user_b.following or [])


def can_message(db, a_id: str, b_id: str) -> bool:
    if not a_id or not b_id:
        return False
    user_a = db.get(User, a_id, populate_existing=True)
    user_b = db.get(User, b_id, populate_existing=True)
    return is_mutual_follow(user_a, user_b)


def require_can_message(db, a_id: str, b_id: str) -> None:
    if not can_message(db, a_id, b_id):
        raise PermissionDenied(
            "Both users must follow each other to chat.",
            code="not_mutual_follow",
        )
