from typing import ClassVar, Literal

from pydantic import BaseModel, Field, model_validator

ItemCategory = Literal["limiteds", "accessories", "gear", "event-items", "gamepasses"]
TradeStatus = Literal["open", "in_progress", "completed", "cancelled"]
ForumCategory = Literal["trading_tips", "scammer_reports", "game_updates", "general"]
Priority = Literal["high", "medium", "low"]
EventType = Literal["giveaway", "competition", "event"]
VoteType = Literal["up", "down"]


class StrictPatch(BaseModel):
    """Base for partial updates.

    Fields listed in ``required_fields`` may be omitted from a patch but may
    not be explicitly set to null or blank.
    """

    required_fields: ClassVar[tuple[str, ...]] = ()

    class Config:
        str_strip_whitespace = True

    @model_validator(mode="after")
    def _reject_cleared_required(self):
        for name in self.required_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be empty")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class CommentIn(BaseModel):
    content: str = Field(min_length=1, max_length=1000)

    class Config:
        str_strip_whitespace = True


class VoteIn(BaseModel):
    vote_type: VoteType
