"""
Social graph store.

Follow edges live on the user documents themselves:
- ``following``: users this user follows
- ``followers``: users following this user
- ``follow_requests``: pending inbound requests

Every mutation touching two users runs in one transaction through
``run_graph_write`` so both halves of an edge land together.
"""

from __future__ import annotations

from sqlalchemy import Text, cast, or_

from core.errors import ConflictIssue, NotFoundIssue
from core.models import User
from core.services.messaging_gate import is_mutual_follow
from core.services.shared import (
    load_user,
    logger,
    run_graph_write,
    run_read,
    serialize_user,
    service_operation,
    user_summary,
    with_member,
    without_member,
)
from core.validators import validate_user_id


def _check_pair(user_id: str, target_id: str, *, verb: str) -> None:
    validate_user_id(user_id, "user_id")
    validate_user_id(target_id, "target_id")
    if user_id == target_id:
        raise ConflictIssue(f"You cannot {verb} yourself.", code="self_reference")


def _counts(user: User, target: User) -> dict:
    return {
        "followers_count": len(target.followers or []),
        "following_count": len(user.following or []),
    }


# =============================================================================
# Follow requests
# =============================================================================

@service_operation
def send_follow_request(from_id: str, to_id: str) -> dict:
    """Record a pending request from ``from_id`` on ``to_id``'s document."""
    _check_pair(from_id, to_id, verb="request to follow")

    def _apply(db) -> dict:
        sender = load_user(db, from_id, field="from_id")
        receiver = load_user(db, to_id, field="to_id")
        if to_id in (sender.following or []):
            raise ConflictIssue("Already following this user.", code="already_following")
        if from_id in (receiver.follow_requests or []):
            raise ConflictIssue("Follow request already sent.", code="duplicate_request")
        receiver.follow_requests = with_member(receiver.follow_requests, from_id)
        return {
            "sender": user_summary(sender),
            "receiver": user_summary(receiver),
        }

    result = run_graph_write("send_follow_request", _apply)
    logger.info("follow_request_sent", extra={"from_id": from_id, "to_id": to_id})
    return result


@service_operation
def accept_follow_request(user_id: str, requester_id: str) -> dict:
    """
    Accept a pending request: the requester starts following ``user_id``.

    The reverse edge is not created; mutual follow needs a separate follow.
    Accepting an already-handled request fails with ``no_such_request``.
    """
    validate_user_id(user_id, "user_id")
    validate_user_id(requester_id, "requester_id")

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        requester = load_user(db, requester_id, field="requester_id")
        if requester_id not in (user.follow_requests or []):
            raise ConflictIssue("No follow request from this user", code="no_such_request")
        user.follow_requests = without_member(user.follow_requests, requester_id)
        user.followers = with_member(user.followers, requester_id)
        requester.following = with_member(requester.following, user_id)
        return {
            "user": user_summary(user),
            "follower": user_summary(requester),
        }

    result = run_graph_write("accept_follow_request", _apply)
    logger.info("follow_request_accepted", extra={"user_id": user_id, "requester_id": requester_id})
    return result


@service_operation
def reject_follow_request(user_id: str, requester_id: str) -> dict:
    validate_user_id(user_id, "user_id")
    validate_user_id(requester_id, "requester_id")

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        if requester_id not in (user.follow_requests or []):
            raise ConflictIssue("No follow request from this user", code="no_such_request")
        user.follow_requests = without_member(user.follow_requests, requester_id)
        return {"user": user_summary(user)}

    result = run_graph_write("reject_follow_request", _apply)
    logger.info("follow_request_rejected", extra={"user_id": user_id, "requester_id": requester_id})
    return result


# =============================================================================
# Direct follow / unfollow
# =============================================================================

@service_operation
def follow(user_id: str, target_id: str) -> dict:
    _check_pair(user_id, target_id, verb="follow")

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        target = load_user(db, target_id, field="target_id")
        if target_id in (user.following or []):
            raise ConflictIssue("Already following.", code="already_following")
        user.following = with_member(user.following, target_id)
        target.followers = with_member(target.followers, user_id)
        # A direct follow supersedes any pending request in the same direction.
        if user_id in (target.follow_requests or []):
            target.follow_requests = without_member(target.follow_requests, user_id)
        return {"user": user_summary(user), "target": user_summary(target), **_counts(user, target)}

    result = run_graph_write("follow", _apply)
    logger.info("user_followed", extra={"user_id": user_id, "target_id": target_id})
    return result


@service_operation
def unfollow(user_id: str, target_id: str) -> dict:
    _check_pair(user_id, target_id, verb="unfollow")

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        target = load_user(db, target_id, field="target_id")
        if target_id not in (user.following or []):
            raise ConflictIssue("Not following this user.", code="not_following")
        user.following = without_member(user.following, target_id)
        target.followers = without_member(target.followers, user_id)
        return {"user": user_summary(user), "target": user_summary(target), **_counts(user, target)}

    result = run_graph_write("unfollow", _apply)
    logger.info("user_unfollowed", extra={"user_id": user_id, "target_id": target_id})
    return result


# =============================================================================
# Account removal
# =============================================================================

def _referencing_users(db, user_id: str) -> list[User]:
    """Users whose edge sets may mention ``user_id`` (coarse text match, refined by caller)."""
    needle = f'%"{user_id}"%'
    return (
        db.query(User)
        .filter(User.id != user_id)
        .filter(
            or_(
                cast(User.followers, Text).like(needle),
                cast(User.following, Text).like(needle),
                cast(User.follow_requests, Text).like(needle),
            )
        )
        .all()
    )


@service_operation
def remove_user(user_id: str) -> dict:
    """
    Delete a user and scrub its id from every other user's edge sets in the
    same transaction. Messages are left in place.
    """
    validate_user_id(user_id)

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        cleaned = 0
        for other in _referencing_users(db, user_id):
            touched = False
            for attr in ("followers", "following", "follow_requests"):
                values = getattr(other, attr) or []
                if user_id in values:
                    setattr(other, attr, without_member(values, user_id))
                    touched = True
            if touched:
                cleaned += 1
        db.delete(user)
        return {"user_id": user_id, "cleaned_users": cleaned}

    result = run_graph_write("remove_user", _apply)
    logger.info("user_removed", extra=result)
    return result


# =============================================================================
# Reads
# =============================================================================

def _summaries(db, ids: list[str]) -> list[dict]:
    if not ids:
        return []
    rows = db.query(User).filter(User.id.in_(ids)).all()
    by_id = {row.id: row for row in rows}
    return [user_summary(by_id[uid]) for uid in ids if uid in by_id]


@service_operation
def get_user(user_id: str) -> dict:
    validate_user_id(user_id)
    return run_read(lambda db: serialize_user(load_user(db, user_id)))


@service_operation
def list_followers(user_id: str) -> list[dict]:
    validate_user_id(user_id)
    return run_read(lambda db: _summaries(db, list(load_user(db, user_id).followers or [])))


@service_operation
def list_following(user_id: str) -> list[dict]:
    validate_user_id(user_id)
    return run_read(lambda db: _summaries(db, list(load_user(db, user_id).following or [])))


@service_operation
def list_follow_requests(user_id: str) -> list[dict]:
    validate_user_id(user_id)
    return run_read(lambda db: _summaries(db, list(load_user(db, user_id).follow_requests or [])))


@service_operation
def list_users_for(viewer_id: str) -> list[dict]:
    """All other users, annotated with the viewer's relationship to each."""
    validate_user_id(viewer_id, "viewer_id")

    def _read(db) -> list[dict]:
        viewer = db.get(User, viewer_id)
        if viewer is None:
            raise NotFoundIssue("User not found", code="user_not_found")
        others = (
            db.query(User)
            .filter(User.id != viewer_id)
            .order_by(User.handle.asc())
            .all()
        )
        results = []
        for other in others:
            results.append({
                **user_summary(other),
                "bio": other.bio or "",
                "am_following": other.id in (viewer.following or []),
                "follows_me": viewer_id in (other.following or []),
                "request_pending": viewer_id in (other.follow_requests or []),
                "is_mutual_follow": is_mutual_follow(viewer, other),
            })
        return results

    return run_read(_read)
