"""Pydantic schemas"""
from .base import CamelModel, clamp_unit
from .chat import (
    AnalysisSummary,
    Attachment,
    AttachmentKind,
    ChatMetadata,
    ChatResponse,
    Confidence,
    QueryResponse,
    SessionAnalysis,
    SessionPin,
    SessionRename,
    SessionResponse,
    Source,
    SourceType,
    TimelineEntry,
    sort_sources_for_display,
)
from .feedback import FeedbackCreate, FeedbackResponse
from .legal import (
    Citations,
    ContextualHelpRequest,
    ContextualHelpResponse,
    DocumentIn,
    HelpContext,
    LegalDocumentResponse,
    LegalSearchResponse,
    RecentDocument,
    SearchContext,
    SectionIn,
)

__all__ = [
    "CamelModel",
    "clamp_unit",
    "AnalysisSummary",
    "Attachment",
    "AttachmentKind",
    "ChatMetadata",
    "ChatResponse",
    "Confidence",
    "QueryResponse",
    "SessionAnalysis",
    "SessionPin",
    "SessionRename",
    "SessionResponse",
    "Source",
    "SourceType",
    "TimelineEntry",
    "sort_sources_for_display",
    "FeedbackCreate",
    "FeedbackResponse",
    "Citations",
    "ContextualHelpRequest",
    "ContextualHelpResponse",
    "DocumentIn",
    "HelpContext",
    "LegalDocumentResponse",
    "LegalSearchResponse",
    "RecentDocument",
    "SearchContext",
    "SectionIn",
]
