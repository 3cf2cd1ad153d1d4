"""
Real-time event channel.

Clients speak the same envelope the server pushes: ``{"event": ..., "data": ...}``.
The socket is authenticated from the handshake's identity header; connections
without a known identity are closed with a policy-violation code. A connection
must then announce itself with ``user_connected`` before any relay event is
accepted, and relays are always attributed to the authenticated identity.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

import core.config as config
from core.errors import AuthenticationRequired, ServiceError
from core.services import delivery, follow_workflow
from core.services.presence import event_envelope
from app.auth import header_identity, resolve_user
from app.deps import get_presence


router = APIRouter()

logger = config.logger

EVENT_ERROR = "error"


async def _send_error(ws: WebSocket, code: str, message: str) -> None:
    try:
        await ws.send_json(event_envelope(EVENT_ERROR, {"error": code, "message": message}))
    except Exception as exc:
        logger.warning("ws_error_send_failed", extra={"error": str(exc)})


def _field(data: Any, name: str) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    value = data.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


async def _authenticate(ws: WebSocket) -> Optional[str]:
    """Resolve the handshake identity, or refuse the socket."""
    try:
        user = await asyncio.to_thread(resolve_user, header_identity(ws.headers))
    except AuthenticationRequired as exc:
        logger.info("ws_auth_refused", extra={"error_code": exc.code})
        await _send_error(ws, exc.code, str(exc))
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    return user.id


async def _handle_user_connected(ws: WebSocket, data: Any, presence, session_identity: str) -> Optional[str]:
    announced = data.strip() if isinstance(data, str) else _field(data, "user_id")
    if announced and announced != session_identity:
        await _send_error(ws, "identity_mismatch", "Announced identity does not match the session")
        return None
    await presence.connect(session_identity, ws)
    return session_identity


async def _handle_relay(event: str, data: Any, identity: str, presence) -> None:
    if event == "follow_request":
        target = _field(data, "to")
        if target:
            await follow_workflow.relay_follow_request(identity, target, presence=presence)
    elif event == "follow":
        target = _field(data, "followed_id")
        if target:
            await follow_workflow.relay_follow(identity, target, presence=presence)
    elif event == "unfollow":
        target = _field(data, "unfollowed_id")
        if target:
            await follow_workflow.relay_unfollow(identity, target, presence=presence)
    elif event == "new_message":
        raw_id = _field(data, "message_id")
        if raw_id and raw_id.isdigit():
            await delivery.relay_message(int(raw_id), identity, presence=presence)


@router.websocket("/ws")
async def realtime(ws: WebSocket):
    presence = get_presence(ws)
    await ws.accept()
    session_identity = await _authenticate(ws)
    if session_identity is None:
        return
    identity: Optional[str] = None

    try:
        while True:
            try:
                frame = await ws.receive_json()
            except (ValueError, KeyError, TypeError):
                # Non-JSON text, or a binary frame with no text payload.
                await _send_error(ws, "invalid_frame", "Frames must be JSON text")
                continue
            if not isinstance(frame, dict):
                await _send_error(ws, "invalid_frame", "Frames must be event envelopes")
                continue

            event = frame.get("event")
            data = frame.get("data")
            try:
                if event == "user_connected":
                    identity = await _handle_user_connected(ws, data, presence, session_identity) or identity
                elif event in {"follow_request", "follow", "unfollow", "new_message"}:
                    if identity is None:
                        await _send_error(ws, "not_connected", "Send user_connected first")
                        continue
                    await _handle_relay(event, data, identity, presence)
                else:
                    await _send_error(ws, "unknown_event", f"Unknown event: {event}")
            except ServiceError as exc:
                await _send_error(ws, exc.code, str(exc))
    except WebSocketDisconnect:
        pass
    finally:
        removed = await presence.disconnect(ws)
        logger.info("ws_closed", extra={"identity": session_identity, "was_online": removed is not None})
