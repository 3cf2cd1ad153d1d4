"""
Direct message endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from core.context import AuthContext
from core.services import delivery
from core.services.media_store import MediaUploader
from core.services.presence import PresenceRegistry
from app.deps import get_auth_context, get_presence, get_uploader
from app.schemas import MarkReadRequest, SendMessageRequest, UpdateStatusRequest


router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("/send/{receiver_id}", status_code=201)
async def send_message(
    receiver_id: str,
    body: SendMessageRequest,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
    uploader: MediaUploader | None = Depends(get_uploader),
):
    return await delivery.send_message(
        auth.user_id,
        receiver_id,
        body.text,
        body.image,
        presence=presence,
        uploader=uploader,
    )


@router.post("/mark-read")
async def mark_all_read(
    body: MarkReadRequest,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    return await delivery.mark_all_read(auth.user_id, body.sender_id, presence=presence)


@router.patch("/{message_id}/status")
async def update_message_status(
    message_id: int,
    body: UpdateStatusRequest,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    result = await delivery.update_message_status(
        message_id,
        body.status,
        presence=presence,
        actor_id=auth.user_id,
    )
    if not result["updated"]:
        return {"message": "No update needed", "updated": False, "data": result["message"]}
    return {"message": "Status updated", "updated": True, "data": result["message"]}


@router.get("/{peer_id}")
async def get_messages(peer_id: str, auth: AuthContext = Depends(get_auth_context)):
    return await delivery.get_messages(auth.user_id, peer_id)
