"""
Shared validation helpers for ChatGate services.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from core.config import (
    MAX_BIO_LENGTH,
    MAX_HANDLE_LENGTH,
    MAX_IMAGE_PAYLOAD_LENGTH,
    MAX_MESSAGE_LENGTH,
    MAX_SHORT_TEXT_LENGTH,
)
from core.errors import ValidationIssue

_HANDLE_RE = re.compile(r"^[A-Za-z0-9_.]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_user_id(value: str, field: str = "user_id") -> None:
    validate_required_text(value, field, 36)


def validate_handle(value: str) -> None:
    validate_required_text(value, "handle", MAX_HANDLE_LENGTH)
    if not _HANDLE_RE.match(value):
        raise ValidationIssue(
            "handle may only contain letters, digits, '_' and '.'",
            field="handle",
            error_type="invalid_format",
        )


def validate_email(value: str) -> None:
    validate_required_text(value, "email", MAX_SHORT_TEXT_LENGTH)
    if not _EMAIL_RE.match(value):
        raise ValidationIssue("email is not a valid address", field="email", error_type="invalid_format")


def validate_full_name(value: str) -> None:
    validate_required_text(value, "full_name", MAX_SHORT_TEXT_LENGTH)


def validate_bio(value: Optional[str]) -> None:
    validate_optional_text(value, "bio", MAX_BIO_LENGTH)


def validate_birthday(value: Optional[date]) -> None:
    if value is None:
        return
    if not isinstance(value, date):
        raise ValidationIssue("birthday must be a date", field="birthday", error_type="invalid_type")
    if value > date.today():
        raise ValidationIssue("birthday cannot be in the future", field="birthday", error_type="out_of_range")


def validate_message_text(value: Optional[str]) -> None:
    validate_optional_text(value, "text", MAX_MESSAGE_LENGTH)


def validate_image_payload(value: Optional[str], field: str = "image") -> None:
    validate_optional_text(value, field, MAX_IMAGE_PAYLOAD_LENGTH)
