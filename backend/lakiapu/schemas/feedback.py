from __future__ import annotations

from datetime import datetime

from pydantic import Field, StrictBool, StrictInt

from .base import CamelModel


class FeedbackCreate(CamelModel):
    rating: StrictInt = Field(..., ge=1, le=5)
    helpful: StrictBool
    comment: str | None = Field(default=None, max_length=5000)


class FeedbackResponse(CamelModel):
    id: int
    query_id: int
    rating: int
    helpful: bool
    comment: str | None
    created_at: datetime
    updated_at: datetime
