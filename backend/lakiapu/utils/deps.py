"""Dependency providers for services held on app.state"""
from typing import Annotated

from fastapi import Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..services.chat_metrics import ChatMetrics
from ..services.chat_session import ChatSessionService
from ..services.feedback_service import FeedbackService
from ..services.legal_query import LegalQueryOrchestrator
from ..services.storage_service import LocalStorageProvider


def get_chat_service(request: Request) -> ChatSessionService:
    return request.app.state.chat_service


def get_feedback_service(request: Request) -> FeedbackService:
    return request.app.state.feedback_service


def get_orchestrator(request: Request) -> LegalQueryOrchestrator:
    return request.app.state.orchestrator


def get_storage(request: Request) -> LocalStorageProvider:
    return request.app.state.storage


def get_metrics(request: Request) -> ChatMetrics:
    return request.app.state.metrics


# SQLite INTEGER range
MAX_ROW_ID = 2**63 - 1

DbSession = Annotated[AsyncSession, Depends(get_db)]
ChatServiceDep = Annotated[ChatSessionService, Depends(get_chat_service)]
FeedbackServiceDep = Annotated[FeedbackService, Depends(get_feedback_service)]
OrchestratorDep = Annotated[LegalQueryOrchestrator, Depends(get_orchestrator)]
StorageDep = Annotated[LocalStorageProvider, Depends(get_storage)]
MetricsDep = Annotated[ChatMetrics, Depends(get_metrics)]
SessionId = Annotated[int, Path(ge=1, le=MAX_ROW_ID)]
QueryId = Annotated[int, Path(ge=1, le=MAX_ROW_ID)]
