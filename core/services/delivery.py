"""
Delivery pipeline: gated send, conversation reads, and the status
sent -> delivered -> read with real-time notifications.

Store calls are synchronous and run in worker threads; pushes are
fire-and-forget through the presence registry.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from core.errors import PermissionDenied, ValidationIssue
from core.services import message_store
from core.services.media_store import MediaUploader, upload_image_with_retry
from core.services.messaging_gate import require_can_message
from core.services.presence import PresenceRegistry
from core.services.shared import logger, run_read, service_operation
from core.validators import validate_image_payload, validate_message_text, validate_user_id

EVENT_NEW_MESSAGE = "newMessage"
EVENT_STATUS_UPDATE = "messageStatusUpdate"
EVENT_BULK_READ = "bulkReadStatusUpdate"


def _check_gate(a_id: str, b_id: str) -> None:
    run_read(lambda db: require_can_message(db, a_id, b_id))


@service_operation
async def send_message(
    sender_id: str,
    receiver_id: str,
    text: Optional[str] = None,
    image: Optional[str] = None,
    *,
    presence: PresenceRegistry,
    uploader: Optional[MediaUploader] = None,
) -> dict:
    validate_user_id(sender_id, "sender_id")
    validate_user_id(receiver_id, "receiver_id")
    await asyncio.to_thread(_check_gate, sender_id, receiver_id)

    text = text.strip() if isinstance(text, str) else text
    if not text and not image:
        raise ValidationIssue(
            "Message cannot be empty",
            field="text",
            error_type="empty_message",
        )
    validate_message_text(text)

    image_url = None
    if image:
        validate_image_payload(image)
        if uploader is None:
            raise ValidationIssue(
                "Image uploads are not available",
                field="image",
                error_type="uploads_disabled",
            )
        image_url = await upload_image_with_retry(image, uploader)

    message = await asyncio.to_thread(
        message_store.create_message, sender_id, receiver_id, text, image_url
    )
    logger.info(
        "message_sent",
        extra={"message_id": message["id"], "sender_id": sender_id, "receiver_id": receiver_id},
    )
    presence.dispatch(receiver_id, EVENT_NEW_MESSAGE, message)
    return message


@service_operation
async def get_messages(viewer_id: str, peer_id: str) -> list[dict]:
    validate_user_id(viewer_id, "viewer_id")
    validate_user_id(peer_id, "peer_id")
    await asyncio.to_thread(_check_gate, viewer_id, peer_id)
    return await asyncio.to_thread(message_store.list_conversation, viewer_id, peer_id)


@service_operation
async def update_message_status(
    message_id: int,
    status,
    *,
    presence: PresenceRegistry,
    actor_id: Optional[str] = None,
) -> dict:
    """
    Move a message forward. Requests for an equal or lower status are a
    no-op that reports ``updated: False`` and emits nothing.
    """
    target = message_store.parse_status(status)
    current = await asyncio.to_thread(message_store.get_message, message_id)
    if actor_id is not None and current["receiver_id"] != actor_id:
        raise PermissionDenied(
            "Only the recipient can update message status",
            code="not_message_recipient",
        )

    message, updated = await asyncio.to_thread(message_store.advance_status, message_id, target)
    if not updated:
        return {"message": message, "updated": False}

    logger.info(
        "message_status_updated",
        extra={"message_id": message_id, "status": target.value},
    )
    presence.dispatch(
        message["sender_id"],
        EVENT_STATUS_UPDATE,
        {"message_id": message_id, "status": target.value},
    )
    return {"message": message, "updated": True}


@service_operation
async def mark_all_read(receiver_id: str, sender_id: str, *, presence: PresenceRegistry) -> dict:
    """Mark everything ``sender_id`` sent to ``receiver_id`` as read; one event per batch."""
    validate_user_id(receiver_id, "receiver_id")
    validate_user_id(sender_id, "sender_id")
    updated_count = await asyncio.to_thread(message_store.mark_read_from, sender_id, receiver_id)
    if updated_count > 0:
        logger.info(
            "messages_marked_read",
            extra={"receiver_id": receiver_id, "sender_id": sender_id, "count": updated_count},
        )
        presence.dispatch(sender_id, EVENT_BULK_READ, {"from": receiver_id})
    return {"updated_count": updated_count}


@service_operation
async def relay_message(message_id: int, from_id: str, *, presence: PresenceRegistry) -> bool:
    """Re-push a stored message to its receiver on behalf of its sender."""
    message = await asyncio.to_thread(message_store.get_message, message_id)
    if message["sender_id"] != from_id:
        raise PermissionDenied("Only the sender can relay a message", code="not_message_sender")
    if not presence.is_online(message["receiver_id"]):
        return False
    return await presence.push(message["receiver_id"], EVENT_NEW_MESSAGE, message)
