"""Service layer"""
from .answer_generation import AnswerGenerator, GeneratedAnswer, LanguageMode
from .chat_metrics import ChatMetrics
from .chat_session import ChatSessionService, SessionWithQueries, title_from_question
from .document_ingestion import DocumentIngestionService
from .feedback_service import FeedbackService
from .legal_query import ChatResult, IncomingFile, LegalAnalysis, LegalQueryOrchestrator
from .retrieval import LegalRetriever, RetrievedSource, VectorLegalRetriever, finlex_url
from .storage_service import LocalStorageProvider, StorageProvider, StoredAttachment

__all__ = [
    "AnswerGenerator",
    "GeneratedAnswer",
    "LanguageMode",
    "ChatMetrics",
    "ChatSessionService",
    "SessionWithQueries",
    "title_from_question",
    "DocumentIngestionService",
    "FeedbackService",
    "ChatResult",
    "IncomingFile",
    "LegalAnalysis",
    "LegalQueryOrchestrator",
    "LegalRetriever",
    "RetrievedSource",
    "VectorLegalRetriever",
    "finlex_url",
    "LocalStorageProvider",
    "StorageProvider",
    "StoredAttachment",
]
