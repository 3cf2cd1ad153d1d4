"""
Message persistence: append-only rows whose only mutable field is status.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, update

from core.errors import NotFoundIssue, ValidationIssue
from core.models import Message, MessageStatus, STATUS_PRIORITY
from core.services.shared import run_read, serialize_message, open_session

UPDATABLE_STATUSES = {MessageStatus.delivered, MessageStatus.read}


def parse_status(value) -> MessageStatus:
    """Accept only the statuses a client may request."""
    try:
        status = MessageStatus(value)
    except ValueError as exc:
        raise ValidationIssue("Invalid status", field="status", error_type="invalid_status") from exc
    if status not in UPDATABLE_STATUSES:
        raise ValidationIssue("Invalid status", field="status", error_type="invalid_status")
    return status


def lower_statuses(status: MessageStatus) -> list[MessageStatus]:
    return [s for s, rank in STATUS_PRIORITY.items() if rank < STATUS_PRIORITY[status]]


def create_message(
    sender_id: str,
    receiver_id: str,
    text: Optional[str],
    image: Optional[str],
) -> dict:
    db = open_session()
    try:
        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text or None,
            image=image or None,
            status=MessageStatus.sent,
        )
        db.add(message)
        db.commit()
        return serialize_message(message)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_message(message_id: int) -> dict:
    def _read(db) -> dict:
        message = db.get(Message, message_id)
        if message is None:
            raise NotFoundIssue("Message not found", code="message_not_found")
        return serialize_message(message)

    return run_read(_read)


def list_conversation(user_a: str, user_b: str) -> list[dict]:
    """Both directions of a conversation, oldest first."""
    def _read(db) -> list[dict]:
        rows = (
            db.query(Message)
            .filter(
                or_(
                    and_(Message.sender_id == user_a, Message.receiver_id == user_b),
                    and_(Message.sender_id == user_b, Message.receiver_id == user_a),
                )
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [serialize_message(row) for row in rows]

    return run_read(_read)


def advance_status(message_id: int, status: MessageStatus) -> tuple[dict, bool]:
    """
    Move a message forward to ``status``.

    Returns the message and whether a transition happened. The UPDATE is
    conditional on the current status being lower, so concurrent callers
    cannot move a message backwards.
    """
    db = open_session()
    try:
        message = db.get(Message, message_id)
        if message is None:
            raise NotFoundIssue("Message not found", code="message_not_found")
        result = db.execute(
            update(Message)
            .where(Message.id == message_id)
            .where(Message.status.in_(lower_statuses(status)))
            .values(status=status, updated_at=datetime.utcnow())
        )
        db.commit()
        db.refresh(message)
        return serialize_message(message), result.rowcount > 0
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def mark_read_from(sender_id: str, receiver_id: str) -> int:
    """Bulk-mark everything ``sender_id`` sent to ``receiver_id`` as read."""
    db = open_session()
    try:
        result = db.execute(
            update(Message)
            .where(Message.sender_id == sender_id)
            .where(Message.receiver_id == receiver_id)
            .where(Message.status != MessageStatus.read)
            .values(status=MessageStatus.read, updated_at=datetime.utcnow())
        )
        db.commit()
        return result.rowcount or 0
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
