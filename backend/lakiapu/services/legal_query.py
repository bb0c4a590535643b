"""Legal query orchestration: retrieval and answer generation combined into one stored answer"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..exceptions import LakiapuError, NotFoundError, UpstreamTimeoutError, UpstreamUnavailableError
from ..models.chat import ChatSession, Query
from ..schemas.chat import Attachment, AttachmentKind, ChatMetadata, Confidence, Source
from .answer_generation import AnswerGenerator, FileSummary, GeneratedAnswer, LanguageMode, summarize_file
from .retrieval import LegalRetriever, RetrievedSource
from .storage_service import StorageProvider, StoredAttachment

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CONTEXT_EXCERPT_CHARS = 500


@dataclass(frozen=True)
class IncomingFile:
    """Uploaded file held in memory until the answer is ready"""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ChatResult:
    query: Query
    metadata: ChatMetadata


@dataclass
class LegalAnalysis:
    generated: GeneratedAnswer
    retrieved: list[RetrievedSource]
    sources: list[Source]
    legal_context: str | None
    metadata: ChatMetadata


def merge_sources(model_sources: Sequence[Source], retrieved: Sequence[RetrievedSource]) -> list[Source]:
    """Model-proposed sources first, then retrieval hits; duplicates are kept"""
    merged: list[Source] = [Source.model_validate(s.model_dump()) for s in model_sources]
    merged.extend(r.to_source() for r in retrieved)
    return merged


def build_legal_context(retrieved: Sequence[RetrievedSource]) -> str | None:
    if not retrieved:
        return None
    parts: list[str] = []
    for i, hit in enumerate(retrieved, 1):
        label = f"{hit.title} {hit.section}".strip() if hit.section else hit.title
        excerpt = hit.content[:MAX_CONTEXT_EXCERPT_CHARS]
        parts.append(f"{i}. {label}\n{excerpt}".rstrip())
    return "\n\n".join(parts)


class LegalQueryOrchestrator:
    """Runs retrieval and answer generation concurrently and persists exactly one Query per answer"""

    def __init__(
        self,
        retriever: LegalRetriever,
        generator: AnswerGenerator,
        storage: StorageProvider,
        settings: Settings,
    ):
        self.retriever = retriever
        self.generator = generator
        self.storage = storage
        self.retrieval_timeout: float = float(settings.retrieval_timeout_seconds)
        self.generation_timeout: float = float(settings.generation_timeout_seconds)

    async def _bounded(self, call: Awaitable[T], *, timeout: float, collaborator: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("%s timed out after %.1fs", collaborator, timeout)
            raise UpstreamTimeoutError(
                f"The {collaborator} service timed out",
                details={"collaborator": collaborator},
            ) from e
        except LakiapuError:
            raise
        except Exception as e:
            logger.exception("%s failed", collaborator)
            raise UpstreamUnavailableError(
                f"The {collaborator} service is unavailable",
                details={"collaborator": collaborator},
            ) from e

    async def _fan_out(
        self,
        question: str,
        context: str | None,
        file_summaries: list[FileSummary],
        language_mode: LanguageMode,
    ) -> tuple[list[RetrievedSource], GeneratedAnswer]:
        retrieval = asyncio.ensure_future(
            self._bounded(self.retriever.search(question), timeout=self.retrieval_timeout, collaborator="retrieval")
        )
        generation = asyncio.ensure_future(
            self._bounded(
                self.generator.generate(question, context, file_summaries, language_mode),
                timeout=self.generation_timeout,
                collaborator="generation",
            )
        )
        try:
            retrieved, generated = await asyncio.gather(retrieval, generation)
        except BaseException:
            for task in (retrieval, generation):
                _ = task.cancel()
            raise
        return list(retrieved), generated

    def _metadata(self, started: float, generated: GeneratedAnswer) -> ChatMetadata:
        return ChatMetadata(
            processing_time=int((time.perf_counter() - started) * 1000),
            sources_used=list(self.retriever.corpora),
            last_updated=datetime.now(timezone.utc),
            fallback=generated.fallback,
        )

    async def _previous_context(self, db: AsyncSession, session_id: int) -> str | None:
        stmt = (
            select(Query.legal_context)
            .where(Query.session_id == session_id, Query.legal_context.is_not(None))
            .order_by(Query.created_at.desc(), Query.id.desc())
            .limit(1)
        )
        context = (await db.execute(stmt)).scalars().first()
        # end the read transaction before the slow upstream calls
        await db.commit()
        return context

    async def _discard_files(self, stored: Sequence[StoredAttachment]) -> None:
        for s in stored:
            try:
                _ = await self.storage.delete_attachment(s.name)
            except OSError:
                logger.exception("could not remove attachment name=%s", s.name)

    async def _store_files(self, files: Sequence[IncomingFile]) -> list[StoredAttachment]:
        """Write every file or none of them"""
        stored: list[StoredAttachment] = []
        try:
            for f in files:
                stored.append(
                    await self.storage.put_attachment(
                        original_name=f.filename,
                        content=f.data,
                        content_type=f.content_type,
                    )
                )
        except BaseException:
            await self._discard_files(stored)
            raise
        return stored

    @staticmethod
    def _attachment(stored: StoredAttachment) -> Attachment:
        return Attachment(
            kind=AttachmentKind.for_content_type(stored.content_type),
            filename=stored.original_name,
            url=stored.url,
            content_type=stored.content_type,
            size=stored.size,
        )

    async def answer(
        self,
        db: AsyncSession,
        session_id: int,
        question: str,
        files: Sequence[IncomingFile] = (),
        language_mode: LanguageMode | str = LanguageMode.REGULAR,
    ) -> ChatResult:
        started = time.perf_counter()
        mode = LanguageMode.parse(language_mode)
        context = await self._previous_context(db, session_id)
        summaries = [summarize_file(f.filename, f.content_type, f.data) for f in files]

        retrieved, generated = await self._fan_out(question, context, summaries, mode)
        sources = merge_sources(generated.sources, retrieved)

        exists = (await db.execute(select(ChatSession.id).where(ChatSession.id == session_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError("Chat session not found", details={"sessionId": session_id})

        stored = await self._store_files(files)
        confidence = Confidence.model_validate(generated.confidence.model_dump())
        query = Query(
            session_id=session_id,
            question=question,
            answer=generated.answer,
            sources=[s.to_record() for s in sources],
            attachments=[self._attachment(s).to_record() for s in stored],
            legal_context=build_legal_context(retrieved),
            confidence=confidence.model_dump(mode="json", by_alias=False),
        )
        db.add(query)
        # no Query row means no files on disk either
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            await self._discard_files(stored)
            raise NotFoundError("Chat session not found", details={"sessionId": session_id}) from e
        except BaseException:
            await db.rollback()
            await self._discard_files(stored)
            raise
        await db.refresh(query)

        metadata = self._metadata(started, generated)
        logger.info(
            "chat_done session=%s query=%s sources=%s fallback=%s ms=%s",
            session_id,
            query.id,
            len(sources),
            generated.fallback,
            metadata.processing_time,
        )
        return ChatResult(query=query, metadata=metadata)

    async def analyze(self, question: str, language_mode: LanguageMode | str = LanguageMode.REGULAR) -> LegalAnalysis:
        """Same collaborator fan-out as `answer`, without storing anything"""
        started = time.perf_counter()
        retrieved, generated = await self._fan_out(question, None, [], LanguageMode.parse(language_mode))
        return LegalAnalysis(
            generated=generated,
            retrieved=retrieved,
            sources=merge_sources(generated.sources, retrieved),
            legal_context=build_legal_context(retrieved),
            metadata=self._metadata(started, generated),
        )
