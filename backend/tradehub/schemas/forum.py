from pydantic import BaseModel, Field

from tradehub.schemas.common import ForumCategory, StrictPatch


class ForumPostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1, max_length=20000)
    category: ForumCategory = "general"
    images: list[str] = Field(default_factory=list, max_length=5)

    class Config:
        str_strip_whitespace = True


class ForumPostUpdate(StrictPatch):
    required_fields = ("title", "content", "category")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    content: str | None = Field(default=None, min_length=1, max_length=20000)
    category: ForumCategory | None = None
    images: list[str] | None = Field(default=None, max_length=5)
