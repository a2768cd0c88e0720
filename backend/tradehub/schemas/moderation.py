from typing import Literal

from pydantic import BaseModel, Field

ReportTargetType = Literal["user", "trade", "forum_post", "wishlist_item", "event"]
AssignableRole = Literal["user", "verified", "middleman", "moderator", "admin", "banned"]


class ReportIn(BaseModel):
    target_type: ReportTargetType
    target_id: int
    reason: str = Field(min_length=1, max_length=1000)

    class Config:
        str_strip_whitespace = True


class ReportResolveIn(BaseModel):
    status: Literal["reviewed", "resolved"]
    action: Literal["none", "delete_content", "ban_user"] = "none"
    note: str | None = Field(default=None, max_length=1000)


class BanIn(BaseModel):
    action: Literal["ban", "unban"] = "ban"
    reason: str | None = Field(default=None, max_length=500)


class RoleIn(BaseModel):
    role: AssignableRole
    reason: str | None = Field(default=None, max_length=500)


class VerificationDecisionIn(BaseModel):
    outcome: Literal["approve_verified", "approve_middleman", "reject"]
