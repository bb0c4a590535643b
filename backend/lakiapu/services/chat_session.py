"""Chat session lifecycle"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..exceptions import InvalidInputError, NotFoundError, UnsupportedFileTypeError, UploadTooLargeError
from ..models.chat import DEFAULT_SESSION_TITLE, ChatSession, Query
from ..schemas.chat import (
    AnalysisSummary,
    Confidence,
    SessionAnalysis,
    Source,
    TimelineEntry,
)
from .answer_generation import LanguageMode
from .legal_query import ChatResult, IncomingFile, LegalQueryOrchestrator

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
TITLE_ELLIPSIS = "..."

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    }
)


def title_from_question(question: str, files: Sequence[IncomingFile] = ()) -> str:
    """Session title derived from the first message"""
    text = str(question or "").strip()
    if not text and files:
        text = files[0].filename.strip()
    if not text:
        return DEFAULT_SESSION_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[: TITLE_MAX_CHARS - len(TITLE_ELLIPSIS)] + TITLE_ELLIPSIS
    return text


@dataclass
class SessionWithQueries:
    session: ChatSession
    queries: list[Query]


class ChatSessionService:
    def __init__(self, orchestrator: LegalQueryOrchestrator, settings: Settings):
        self.orchestrator = orchestrator
        self.max_attachment_bytes: int = int(settings.max_attachment_bytes)
        self.max_attachments: int = int(settings.max_attachments)

    async def _require(self, db: AsyncSession, session_id: int) -> ChatSession:
        result = await db.execute(
            select(ChatSession)
            .where(ChatSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError("Chat session not found", details={"sessionId": session_id})
        return session

    async def _queries(self, db: AsyncSession, session_id: int) -> list[Query]:
        result = await db.execute(
            select(Query)
            .where(Query.session_id == session_id)
            .order_by(Query.created_at.asc(), Query.id.asc())
        )
        return list(result.scalars().all())

    async def create_session(self, db: AsyncSession) -> SessionWithQueries:
        session = ChatSession(title=DEFAULT_SESSION_TITLE, is_pinned=False)
        db.add(session)
        await db.commit()
        await db.refresh(session)
        logger.info("session created id=%s", session.id)
        return SessionWithQueries(session=session, queries=[])

    async def list_sessions(self, db: AsyncSession) -> list[SessionWithQueries]:
        """All sessions, newest first, each with only its latest query"""
        sessions = (
            await db.execute(
                select(ChatSession)
                .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        if not sessions:
            return []

        ranked = (
            select(
                Query.id.label("query_id"),
                func.row_number()
                .over(partition_by=Query.session_id, order_by=(Query.created_at.desc(), Query.id.desc()))
                .label("rn"),
            )
            .subquery()
        )
        latest = (
            await db.execute(select(Query).join(ranked, ranked.c.query_id == Query.id).where(ranked.c.rn == 1))
        ).scalars().all()
        by_session = {q.session_id: q for q in latest}

        return [
            SessionWithQueries(session=s, queries=[by_session[s.id]] if s.id in by_session else [])
            for s in sessions
        ]

    async def get_session(self, db: AsyncSession, session_id: int) -> SessionWithQueries:
        session = await self._require(db, session_id)
        return SessionWithQueries(session=session, queries=await self._queries(db, session_id))

    async def rename_session(self, db: AsyncSession, session_id: int, title: str) -> SessionWithQueries:
        new_title = str(title or "").strip()
        if not new_title:
            raise InvalidInputError("Title must not be empty", details={"field": "title"})
        session = await self._require(db, session_id)
        session.title = new_title
        session.updated_at = func.now()
        await db.commit()
        await db.refresh(session)
        return SessionWithQueries(session=session, queries=await self._queries(db, session_id))

    async def toggle_pin(self, db: AsyncSession, session_id: int, pinned: bool) -> SessionWithQueries:
        session = await self._require(db, session_id)
        session.is_pinned = bool(pinned)
        session.updated_at = func.now()
        await db.commit()
        await db.refresh(session)
        return SessionWithQueries(session=session, queries=await self._queries(db, session_id))

    async def delete_session(self, db: AsyncSession, session_id: int) -> None:
        result = await db.execute(delete(ChatSession).where(ChatSession.id == session_id))
        if not result.rowcount:
            await db.rollback()
            raise NotFoundError("Chat session not found", details={"sessionId": session_id})
        await db.commit()
        logger.info("session deleted id=%s", session_id)

    def validate_message(self, question: str, files: Sequence[IncomingFile]) -> str:
        """Normalise the question and check attachments; raises before anything is stored or sent upstream"""
        text = str(question or "").strip()
        if not text and not files:
            raise InvalidInputError("Question must not be empty", details={"field": "question"})

        if len(files) > self.max_attachments:
            raise InvalidInputError(
                f"At most {self.max_attachments} attachments are allowed",
                details={"field": "attachments", "count": len(files)},
            )

        for f in files:
            if str(f.content_type).lower() not in ALLOWED_CONTENT_TYPES:
                raise UnsupportedFileTypeError(
                    "Unsupported file type",
                    details={"filename": f.filename, "contentType": f.content_type},
                )

        total = sum(f.size for f in files)
        if total > self.max_attachment_bytes:
            raise UploadTooLargeError(
                "Attachments exceed the size limit",
                details={"totalBytes": total, "maxBytes": self.max_attachment_bytes},
            )
        return text

    async def _title_first_message(
        self,
        db: AsyncSession,
        session_id: int,
        question: str,
        files: Sequence[IncomingFile],
    ) -> None:
        # single conditional statement: only applies while the session has no queries
        stmt = (
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .where(~exists().where(Query.session_id == session_id))
            .values(title=title_from_question(question, files), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        if result.rowcount:
            logger.info("session titled from first message id=%s", session_id)

    async def add_message(
        self,
        db: AsyncSession,
        session_id: int,
        question: str,
        files: Sequence[IncomingFile] = (),
        language_mode: LanguageMode | str = LanguageMode.REGULAR,
    ) -> ChatResult:
        text = self.validate_message(question, files)
        _ = await self._require(db, session_id)
        await self._title_first_message(db, session_id, text, files)
        return await self.orchestrator.answer(db, session_id, text, files, language_mode)

    async def analyze_session(self, db: AsyncSession, session_id: int) -> SessionAnalysis:
        _ = await self._require(db, session_id)
        queries = await self._queries(db, session_id)

        timeline: list[TimelineEntry] = []
        scores: list[float] = []
        topics: list[str] = []
        seen: set[str] = set()
        for q in queries:
            confidence = Confidence.model_validate(q.confidence) if q.confidence else None
            if confidence is not None:
                scores.append(confidence.score)
            sources = [Source.model_validate(s) for s in (q.sources or [])]
            for s in sources:
                if s.title and s.title not in seen:
                    seen.add(s.title)
                    topics.append(s.title)
            timeline.append(
                TimelineEntry(
                    question=q.question,
                    timestamp=q.created_at,
                    confidence=confidence.score if confidence is not None else None,
                    sources=sources,
                )
            )

        # queries without a stored confidence count as 0
        average = sum(scores) / len(queries) if queries else 0.0
        return SessionAnalysis(
            summary=AnalysisSummary(total_queries=len(queries), average_confidence=average, topics=topics),
            timeline=timeline,
        )
