"""
Shared configuration for ChatGate core.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("chatgate")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/chatgate.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Identity handed over by the upstream auth gateway
AUTH_USER_HEADER = os.environ.get("CHATGATE_AUTH_USER_HEADER", "X-User-Id").strip()

# Request/input limits
MAX_MESSAGE_LENGTH = _get_int("CHATGATE_MAX_MESSAGE_LENGTH", 4000)
MAX_SHORT_TEXT_LENGTH = _get_int("CHATGATE_MAX_SHORT_TEXT_LENGTH", 255)
MAX_HANDLE_LENGTH = _get_int("CHATGATE_MAX_HANDLE_LENGTH", 50)
MAX_BIO_LENGTH = _get_int("CHATGATE_MAX_BIO_LENGTH", 500)
MAX_IMAGE_PAYLOAD_LENGTH = _get_int("CHATGATE_MAX_IMAGE_PAYLOAD_LENGTH", 10 * 1024 * 1024)

# Optimistic concurrency on user documents
GRAPH_WRITE_RETRY_MAX = _get_int("GRAPH_WRITE_RETRY_MAX", 3)

# Media store
MEDIA_PROVIDER = os.environ.get("MEDIA_PROVIDER", "cloudinary").strip().lower()
CLOUDINARY_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_UPLOAD_PRESET = os.environ.get("CLOUDINARY_UPLOAD_PRESET")
MEDIA_UPLOAD_TIMEOUT_SECONDS = _get_float("MEDIA_UPLOAD_TIMEOUT_SECONDS", 60.0)
MEDIA_UPLOAD_ATTEMPTS = _get_int("MEDIA_UPLOAD_ATTEMPTS", 3)
MEDIA_UPLOAD_RETRY_DELAY_SECONDS = _get_float("MEDIA_UPLOAD_RETRY_DELAY_SECONDS", 1.0)

# Service identity
SERVICE_NAME = "ChatGate"
SERVICE_VERSION = "0.1.0"
INSTANCE_ID = os.environ.get("CHATGATE_INSTANCE_ID", "chatgate-1")


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        url_lower = DATABASE_URL.lower()
        is_sqlite_url = url_lower.startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    if MEDIA_PROVIDER not in {"cloudinary", "none"}:
        errors.append("MEDIA_PROVIDER must be 'cloudinary' or 'none'")
    if MEDIA_PROVIDER == "cloudinary" and not CLOUDINARY_CLOUD_NAME:
        logger.warning(
            "MEDIA_PROVIDER=cloudinary without CLOUDINARY_CLOUD_NAME; image uploads will fail."
        )

    if MEDIA_UPLOAD_ATTEMPTS < 1:
        errors.append("MEDIA_UPLOAD_ATTEMPTS must be at least 1")
    if GRAPH_WRITE_RETRY_MAX < 0:
        errors.append("GRAPH_WRITE_RETRY_MAX must not be negative")
    if not AUTH_USER_HEADER:
        errors.append("CHATGATE_AUTH_USER_HEADER must not be empty")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
