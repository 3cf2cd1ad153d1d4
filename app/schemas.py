"""
Request bodies for the REST surface.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class CreateUserRequest(BaseModel):
    handle: str = Field(..., examples=["alice"])
    full_name: str = Field(..., examples=["Alice Liddell"])
    email: str = Field(..., examples=["alice@example.com"])
    password_hash: str | None = Field(None, description="Opaque hash issued by the credential service")
    is_email_verified: bool = False


class UpdateProfileRequest(BaseModel):
    full_name: str | None = None
    bio: str | None = None
    birthday: date | None = None
    profile_pic: str | None = Field(None, description="Image payload (data URI) to upload")


class SendMessageRequest(BaseModel):
    text: str | None = None
    image: str | None = Field(None, description="Image payload (data URI) to upload")


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., examples=["delivered"])


class MarkReadRequest(BaseModel):
    sender_id: str
