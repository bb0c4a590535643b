"""ORM models"""
from .chat import ChatSession, Query
from .feedback import Feedback
from .legal_document import DocumentSection, DocumentType, LegalDocument

__all__ = [
    "ChatSession",
    "Query",
    "Feedback",
    "LegalDocument",
    "DocumentSection",
    "DocumentType",
]
