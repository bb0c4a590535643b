"""Legal search, document and contextual-help payloads"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from ..models.legal_document import DocumentType
from .base import CamelModel
from .chat import Attachment, ChatMetadata, Confidence, Source


class Citations(CamelModel):
    statutes: list[Source] = []
    cases: list[Source] = []
    guidelines: list[Source] = []


class SearchContext(CamelModel):
    relevant_sections: list[str] = []
    jurisdiction: str = "FI"


class LegalSearchResponse(CamelModel):
    answer: str
    confidence: Confidence
    citations: Citations
    context: SearchContext
    metadata: ChatMetadata


class LegalDocumentResponse(CamelModel):
    id: int
    identifier: str
    type: DocumentType
    title: str
    url: str
    published_at: datetime
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_document(cls, doc: Any) -> LegalDocumentResponse:
        return cls(
            id=doc.id,
            identifier=doc.identifier,
            type=doc.type,
            title=doc.title,
            url=doc.url,
            published_at=doc.published_at,
            effective_from=doc.effective_from,
            effective_to=doc.effective_to,
            metadata=doc.doc_metadata,
        )


class HelpContext(CamelModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=5000)


class ContextualHelpRequest(CamelModel):
    message: str | None = Field(default=None, max_length=5000)
    context: HelpContext


class ContextualHelpResponse(CamelModel):
    content: str
    sources: list[Source] = []


class RecentDocument(CamelModel):
    query_id: int
    session_id: int
    question: str
    attachments: list[Attachment] = []
    created_at: datetime


class PopularDocument(RecentDocument):
    helpful_count: int = 0
    average_rating: float | None = None


class DocumentCategory(CamelModel):
    category: str
    count: int = 0


class SectionIn(CamelModel):
    section_number: str | None = None
    title: str | None = None
    content: str = Field(..., min_length=1)


class DocumentIn(CamelModel):
    """Ingestion payload for one legal document"""
    identifier: str = Field(..., min_length=1, max_length=100)
    type: DocumentType
    title: str = Field(..., min_length=1, max_length=500)
    content: str = ""
    url: str = ""
    published_at: datetime
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    metadata: dict[str, Any] | None = None
    sections: list[SectionIn] = []
