"""
Follow workflow: social graph mutations plus the real-time events each one
announces.
"""

from __future__ import annotations

import asyncio

from core.services import social_graph
from core.services.presence import PresenceRegistry
from core.services.shared import service_operation

EVENT_NEW_FOLLOW_REQUEST = "new_follow_request"
EVENT_REQUEST_ACCEPTED = "requestAccepted"
EVENT_REQUEST_REJECTED = "requestRejected"
EVENT_NEW_FOLLOWER = "newFollower"
EVENT_UNFOLLOWED = "unfollowed"
EVENT_FOLLOW = "follow"
EVENT_UNFOLLOW = "unfollow"


@service_operation
async def send_follow_request(from_id: str, to_id: str, *, presence: PresenceRegistry) -> dict:
    result = await asyncio.to_thread(social_graph.send_follow_request, from_id, to_id)
    sender = result["sender"]
    presence.dispatch(
        to_id,
        EVENT_NEW_FOLLOW_REQUEST,
        {
            "from": from_id,
            "full_name": sender["full_name"],
            "handle": sender["handle"],
            "profile_pic": sender["profile_pic"],
        },
    )
    return result


@service_operation
async def accept_follow_request(user_id: str, requester_id: str, *, presence: PresenceRegistry) -> dict:
    result = await asyncio.to_thread(social_graph.accept_follow_request, user_id, requester_id)
    user = result["user"]
    presence.dispatch(
        requester_id,
        EVENT_REQUEST_ACCEPTED,
        {
            "user_id": user_id,
            "full_name": user["full_name"],
            "handle": user["handle"],
            "profile_pic": user["profile_pic"],
        },
    )
    return result


@service_operation
async def reject_follow_request(user_id: str, requester_id: str, *, presence: PresenceRegistry) -> dict:
    result = await asyncio.to_thread(social_graph.reject_follow_request, user_id, requester_id)
    presence.dispatch(requester_id, EVENT_REQUEST_REJECTED, {"user_id": user_id})
    return result


@service_operation
async def follow(user_id: str, target_id: str, *, presence: PresenceRegistry) -> dict:
    result = await asyncio.to_thread(social_graph.follow, user_id, target_id)
    presence.dispatch_broadcast(EVENT_FOLLOW, {"follower_id": user_id, "followed_id": target_id})
    presence.dispatch(target_id, EVENT_NEW_FOLLOWER, {"follower_id": user_id})
    return result


@service_operation
async def unfollow(user_id: str, target_id: str, *, presence: PresenceRegistry) -> dict:
    result = await asyncio.to_thread(social_graph.unfollow, user_id, target_id)
    presence.dispatch_broadcast(EVENT_UNFOLLOW, {"unfollower_id": user_id, "unfollowed_id": target_id})
    presence.dispatch(target_id, EVENT_UNFOLLOWED, {"unfollower_id": user_id})
    return result


# =============================================================================
# Client-initiated relays (WebSocket): notify only, no graph mutation
# =============================================================================

async def relay_follow_request(from_id: str, to_id: str, *, presence: PresenceRegistry) -> bool:
    return await presence.push(to_id, EVENT_NEW_FOLLOW_REQUEST, {"from": from_id})


async def relay_follow(follower_id: str, followed_id: str, *, presence: PresenceRegistry) -> bool:
    return await presence.push(followed_id, EVENT_NEW_FOLLOWER, {"follower_id": follower_id})


async def relay_unfollow(unfollower_id: str, unfollowed_id: str, *, presence: PresenceRegistry) -> bool:
    return await presence.push(unfollowed_id, EVENT_UNFOLLOWED, {"unfollower_id": unfollower_id})
