"""Chat sessions and the queries asked in them"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from ..database import Base

if TYPE_CHECKING:
    from .feedback import Feedback

DEFAULT_SESSION_TITLE = "New Chat"


class ChatSession(Base):
    """Conversation thread"""
    __tablename__: str = "chat_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default=DEFAULT_SESSION_TITLE)
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    queries: Mapped[list[Query]] = relationship(
        "Query",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (Query.created_at, Query.id),
    )


class Query(Base):
    """One question/answer exchange"""
    __tablename__: str = "queries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    # [{link, title, section, type, identifier, relevance}]
    sources: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # [{kind, filename, url, content_type, size}]
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    legal_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    session: Mapped[ChatSession] = relationship("ChatSession", back_populates="queries")
    feedback: Mapped[list[Feedback]] = relationship(
        "Feedback",
        back_populates="query",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
