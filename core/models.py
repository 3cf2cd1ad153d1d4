"""
ChatGate Database Models
Users carry their social graph edges inline (document style); messages are flat.
"""

from datetime import datetime
from enum import Enum as PyEnum
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date,
    DateTime, CheckConstraint, Index, Enum, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

import core.config as config

DB_BACKEND = config.DB_BACKEND

JSON_TYPE = JSONB if DB_BACKEND == "postgres" else JSON


def _uuid_default() -> str:
    return str(uuid.uuid4())

Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class MessageStatus(str, PyEnum):
    sent = "sent"
    delivered = "delivered"
    read = "read"


STATUS_PRIORITY = {
    MessageStatus.sent: 1,
    MessageStatus.delivered: 2,
    MessageStatus.read: 3,
}


# =============================================================================
# Users
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    handle = Column(String(50), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255))  # opaque, issued by the credential service
    profile_pic = Column(String(1000), default="", nullable=False)
    bio = Column(Text, default="", nullable=False)
    birthday = Column(Date)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Graph edges (lists of user ids)
    followers = Column(JSON_TYPE, default=list, nullable=False)
    following = Column(JSON_TYPE, default=list, nullable=False)
    follow_requests = Column(JSON_TYPE, default=list, nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


# =============================================================================
# Messages
# =============================================================================

class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    sender_id = Column(String(36), nullable=False)
    receiver_id = Column(String(36), nullable=False)
    text = Column(Text)
    image = Column(String(1000))
    status = Column(
        Enum(MessageStatus, name="message_status"),
        default=MessageStatus.sent,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "(text IS NOT NULL AND text != '') OR (image IS NOT NULL AND image != '')",
            name="ck_messages_has_content",
        ),
        Index("ix_messages_pair_created", "sender_id", "receiver_id", "created_at"),
        Index("ix_messages_receiver_status", "receiver_id", "status"),
    )


__all__ = [
    "Base",
    "MessageStatus",
    "STATUS_PRIORITY",
    "User",
    "Message",
]
