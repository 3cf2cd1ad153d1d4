"""
Profiles and account lifecycle.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.errors import ConflictIssue, ValidationIssue
from core.models import User
from core.services import social_graph
from core.services.media_store import MediaUploader, upload_image_with_retry
from core.services.shared import (
    load_user,
    logger,
    open_session,
    run_graph_write,
    serialize_user,
    service_operation,
)
from core.validators import (
    validate_bio,
    validate_birthday,
    validate_email,
    validate_full_name,
    validate_handle,
    validate_image_payload,
    validate_optional_text,
    validate_user_id,
)


_DUPLICATE_MESSAGES = {
    "handle_taken": "Handle already in use",
    "email_taken": "Email already in use",
}


def _duplicate_code(db, handle: str, email: str) -> Optional[str]:
    if db.query(User.id).filter(User.handle == handle).first() is not None:
        return "handle_taken"
    if db.query(User.id).filter(User.email == email).first() is not None:
        return "email_taken"
    return None


@service_operation
def create_user(
    handle: str,
    full_name: str,
    email: str,
    password_hash: Optional[str] = None,
    is_email_verified: bool = False,
) -> dict:
    validate_handle(handle)
    validate_full_name(full_name)
    validate_email(email)
    validate_optional_text(password_hash, "password_hash", 255)
    email = email.strip().lower()

    db = open_session()
    try:
        code = _duplicate_code(db, handle, email)
        if code:
            raise ConflictIssue(_DUPLICATE_MESSAGES[code], code=code)
        user = User(
            handle=handle,
            full_name=full_name.strip(),
            email=email,
            password_hash=password_hash,
            is_email_verified=bool(is_email_verified),
            followers=[],
            following=[],
            follow_requests=[],
        )
        db.add(user)
        db.commit()
        result = serialize_user(user)
    except IntegrityError as exc:
        # Lost a race with a concurrent signup for the same handle/email.
        db.rollback()
        raise ConflictIssue(
            "Handle or email already in use",
            code=_duplicate_code(db, handle, email) or "conflict",
        ) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info("user_created", extra={"user_id": result["id"], "handle": handle})
    return result


@service_operation
async def update_profile(
    user_id: str,
    *,
    full_name: Optional[str] = None,
    bio: Optional[str] = None,
    birthday: Optional[date] = None,
    profile_pic: Optional[str] = None,
    uploader: Optional[MediaUploader] = None,
) -> dict:
    """
    Update the editable profile fields. A new profile picture is uploaded
    before anything is written, so an upload failure leaves the row untouched.
    """
    validate_user_id(user_id)
    if full_name is not None:
        validate_full_name(full_name)
    validate_bio(bio)
    validate_birthday(birthday)

    picture_url = None
    if profile_pic:
        validate_image_payload(profile_pic, "profile_pic")
        if uploader is None:
            raise ValidationIssue(
                "Image uploads are not available",
                field="profile_pic",
                error_type="uploads_disabled",
            )
        picture_url = await upload_image_with_retry(profile_pic, uploader)

    def _apply(db) -> dict:
        user = load_user(db, user_id)
        if full_name is not None:
            user.full_name = full_name.strip()
        if bio is not None:
            user.bio = bio
        if birthday is not None:
            user.birthday = birthday
        if picture_url is not None:
            user.profile_pic = picture_url
        db.flush()
        return serialize_user(user)

    result = await asyncio.to_thread(run_graph_write, "update_profile", _apply)
    logger.info("profile_updated", extra={"user_id": user_id, "picture_changed": picture_url is not None})
    return result


@service_operation
def delete_account(user_id: str) -> dict:
    """Remove the account and every graph edge pointing at it; messages stay."""
    return social_graph.remove_user(user_id)
