from pydantic import BaseModel, Field

from tradehub.schemas.common import ItemCategory, StrictPatch, TradeStatus


class TradeCreate(BaseModel):
    item_offered: str = Field(min_length=1, max_length=255)
    item_requested: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    category: ItemCategory
    images: list[str] = Field(default_factory=list, max_length=5)

    class Config:
        str_strip_whitespace = True


class TradeUpdate(StrictPatch):
    required_fields = ("item_offered", "category")

    item_offered: str | None = Field(default=None, min_length=1, max_length=255)
    item_requested: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    category: ItemCategory | None = None
    images: list[str] | None = Field(default=None, max_length=5)


class TradeStatusIn(BaseModel):
    status: TradeStatus


class TradeRatingIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)
