"""
User, profile, and follow graph endpoints.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from core.context import AuthContext
from core.services import follow_workflow, profiles, social_graph
from core.services.media_store import MediaUploader
from core.services.presence import PresenceRegistry
from app.deps import get_auth_context, get_presence, get_uploader
from app.schemas import CreateUserRequest, UpdateProfileRequest


router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("", status_code=201)
async def create_user(body: CreateUserRequest):
    return await asyncio.to_thread(
        profiles.create_user,
        body.handle,
        body.full_name,
        body.email,
        body.password_hash,
        body.is_email_verified,
    )


@router.get("")
async def list_users(auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.list_users_for, auth.user_id)


@router.get("/me")
async def me(auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.get_user, auth.user_id)


@router.get("/requests")
async def follow_requests(auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.list_follow_requests, auth.user_id)


@router.get("/followers/{user_id}")
async def followers(user_id: str, auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.list_followers, user_id)


@router.get("/following/{user_id}")
async def following(user_id: str, auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.list_following, user_id)


@router.put("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    auth: AuthContext = Depends(get_auth_context),
    uploader: MediaUploader | None = Depends(get_uploader),
):
    return await profiles.update_profile(
        auth.user_id,
        full_name=body.full_name,
        bio=body.bio,
        birthday=body.birthday,
        profile_pic=body.profile_pic,
        uploader=uploader,
    )


@router.delete("/me")
async def delete_me(auth: AuthContext = Depends(get_auth_context)):
    result = await asyncio.to_thread(profiles.delete_account, auth.user_id)
    return {"message": "Account deleted successfully", **result}


@router.get("/{user_id}")
async def get_user(user_id: str, auth: AuthContext = Depends(get_auth_context)):
    return await asyncio.to_thread(social_graph.get_user, user_id)


# =============================================================================
# Follow graph
# =============================================================================

@router.post("/request/{user_id}")
async def send_follow_request(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    result = await follow_workflow.send_follow_request(auth.user_id, user_id, presence=presence)
    return {"message": "Follow request sent successfully", "receiver": result["receiver"]}


@router.post("/requests/{user_id}/accept")
async def accept_follow_request(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    result = await follow_workflow.accept_follow_request(auth.user_id, user_id, presence=presence)
    return {"message": "Follow request accepted", "follower": result["follower"]}


@router.post("/requests/{user_id}/reject")
async def reject_follow_request(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    await follow_workflow.reject_follow_request(auth.user_id, user_id, presence=presence)
    return {"message": "Follow request rejected"}


@router.post("/follow/{user_id}")
async def follow(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    result = await follow_workflow.follow(auth.user_id, user_id, presence=presence)
    return {
        "message": "Followed successfully",
        "followers_count": result["followers_count"],
        "following_count": result["following_count"],
    }


@router.post("/unfollow/{user_id}")
async def unfollow(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    presence: PresenceRegistry = Depends(get_presence),
):
    result = await follow_workflow.unfollow(auth.user_id, user_id, presence=presence)
    return {
        "message": "Unfollowed successfully",
        "followers_count": result["followers_count"],
        "following_count": result["following_count"],
    }
