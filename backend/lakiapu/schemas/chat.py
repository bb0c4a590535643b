"""Chat session, query and source payloads"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, StrictBool, field_validator

from .base import CamelModel, clamp_unit


class SourceType(str, Enum):
    FINLEX = "finlex"
    KKV = "kkv"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> SourceType | None:
        """Map a free-form tag onto the closed set; unknown tags become OTHER"""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class AttachmentKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"

    @classmethod
    def for_content_type(cls, content_type: str | None) -> AttachmentKind:
        if str(content_type or "").lower().startswith("image/"):
            return cls.IMAGE
        return cls.DOCUMENT


class Source(CamelModel):
    """Citation attached to an answer"""
    link: str = ""
    title: str = ""
    section: str | None = None
    type: SourceType | None = None
    identifier: str | None = None
    relevance: float = 0.0

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: object):
        return SourceType.parse(value)

    @field_validator("relevance", mode="before")
    @classmethod
    def _clamp_relevance(cls, value: object):
        return clamp_unit(value)

    @field_validator("link", "title", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object):
        return "" if value is None else str(value)

    def to_record(self) -> dict[str, Any]:
        """Storage form (snake_case keys)"""
        return self.model_dump(mode="json", by_alias=False)


class Confidence(CamelModel):
    score: float = 0.0
    reasoning: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: object):
        return clamp_unit(value)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object):
        return "" if value is None else str(value)


class Attachment(CamelModel):
    kind: AttachmentKind
    filename: str
    url: str
    content_type: str
    size: int = Field(ge=0)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=False)


def sort_sources_for_display(sources: list[Source]) -> list[Source]:
    """Descending relevance; ties keep their original order"""
    return sorted(sources, key=lambda s: -s.relevance)


class QueryResponse(CamelModel):
    id: int
    session_id: int
    question: str
    answer: str
    sources: list[Source] = []
    attachments: list[Attachment] = []
    legal_context: str | None = None
    confidence: Confidence | None = None
    created_at: datetime

    @field_validator("sources", "attachments", mode="before")
    @classmethod
    def _none_to_list(cls, value: object):
        return [] if value is None else value

    @field_validator("sources", mode="after")
    @classmethod
    def _display_order(cls, value: list[Source]):
        return sort_sources_for_display(value)


class SessionResponse(CamelModel):
    id: int
    title: str
    is_pinned: bool
    created_at: datetime
    updated_at: datetime
    queries: list[QueryResponse] = []

    @classmethod
    def build(cls, session: Any, queries: list[Any]) -> SessionResponse:
        return cls(
            id=session.id,
            title=session.title,
            is_pinned=session.is_pinned,
            created_at=session.created_at,
            updated_at=session.updated_at,
            queries=[QueryResponse.model_validate(q) for q in queries],
        )


class SessionRename(CamelModel):
    title: str = Field(..., max_length=200)


class SessionPin(CamelModel):
    is_pinned: StrictBool


class ChatMetadata(CamelModel):
    processing_time: int
    sources_used: list[str] = []
    last_updated: datetime
    fallback: bool = False


class ChatResponse(CamelModel):
    """Reply to one submitted message"""
    id: int
    answer: str
    sources: list[Source] = []
    attachments: list[Attachment] = []
    confidence: Confidence | None = None
    metadata: ChatMetadata

    @field_validator("sources", mode="after")
    @classmethod
    def _display_order(cls, value: list[Source]):
        return sort_sources_for_display(value)


class AnalysisSummary(CamelModel):
    total_queries: int
    average_confidence: float
    topics: list[str] = []


class TimelineEntry(CamelModel):
    question: str
    timestamp: datetime
    confidence: float | None = None
    sources: list[Source] = []


class SessionAnalysis(CamelModel):
    summary: AnalysisSummary
    timeline: list[TimelineEntry] = []
