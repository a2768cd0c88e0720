from pydantic import BaseModel, Field

from tradehub.schemas.common import ItemCategory, Priority, StrictPatch


class WishlistCreate(BaseModel):
    item_name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    max_price: str | None = Field(default=None, max_length=100)
    category: ItemCategory
    priority: Priority = "medium"

    class Config:
        str_strip_whitespace = True


class WishlistUpdate(StrictPatch):
    required_fields = ("item_name", "category", "priority")

    item_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    max_price: str | None = Field(default=None, max_length=100)
    category: ItemCategory | None = None
    priority: Priority | None = None
