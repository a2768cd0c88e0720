from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from tradehub.core.utils import naive_utc
from tradehub.schemas.common import EventType, StrictPatch


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)
    type: EventType
    start_date: datetime
    end_date: datetime
    prizes: list[str] = Field(default_factory=list, max_length=50)
    requirements: list[str] = Field(default_factory=list, max_length=50)
    max_participants: int | None = Field(default=None, ge=1)

    class Config:
        str_strip_whitespace = True

    @model_validator(mode="after")
    def _check_dates(self):
        # Mixed naive and offset-aware inputs compare as UTC.
        if naive_utc(self.start_date) >= naive_utc(self.end_date):
            raise ValueError("End date must be after start date")
        return self


class EventUpdate(StrictPatch):
    required_fields = ("title", "description", "type", "start_date", "end_date")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1, max_length=5000)
    type: EventType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    prizes: list[str] | None = Field(default=None, max_length=50)
    requirements: list[str] | None = Field(default=None, max_length=50)
    max_participants: int | None = Field(default=None, ge=1)
