from typing import Literal

from pydantic import BaseModel, Field

from tradehub.schemas.common import StrictPatch


class ProfileUpdate(StrictPatch):
    required_fields = ("username",)

    username: str | None = Field(default=None, min_length=3, max_length=50)
    roblox_username: str | None = Field(default=None, max_length=50)
    bio: str | None = Field(default=None, max_length=500)
    discord_username: str | None = Field(default=None, max_length=50)
    timezone: str | None = Field(default=None, max_length=50)
    avatar_url: str | None = Field(default=None, max_length=500)


class VouchIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)


class VerificationRequestIn(BaseModel):
    kind: Literal["verified", "middleman"]
