"""Legal document ingestion: store, embed and index"""
from __future__ import annotations

import logging
from array import array
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import InvalidInputError, UpstreamUnavailableError
from ..models.legal_document import DocumentSection, LegalDocument
from ..schemas.legal import DocumentIn
from .retrieval import VectorLegalRetriever, section_text

logger = logging.getLogger(__name__)


def encode_embedding(vector: list[float]) -> bytes:
    """Pack a vector as little-endian float32"""
    packed = array("f", (float(v) for v in vector))
    if packed.itemsize != 4:
        raise RuntimeError("float32 array type is not 4 bytes on this platform")
    return packed.tobytes()


def decode_embedding(blob: bytes) -> list[float]:
    if len(blob) % 4:
        raise ValueError("embedding blob length is not a multiple of 4")
    unpacked = array("f")
    unpacked.frombytes(blob)
    return unpacked.tolist()


class DocumentIngestionService:
    def __init__(self, embeddings: Any | None, retriever: VectorLegalRetriever | None = None):
        self.embeddings = embeddings
        self.retriever = retriever

    async def _embed(self, texts: list[str]) -> list[list[float] | None]:
        if self.embeddings is None or not texts:
            return [None] * len(texts)
        try:
            vectors = await self.embeddings.aembed_documents(texts)
        except Exception as e:
            logger.exception("embedding request failed count=%s", len(texts))
            raise UpstreamUnavailableError("Embedding service is unavailable") from e
        return [list(v) for v in vectors]

    async def ingest(self, db: AsyncSession, document_in: DocumentIn) -> LegalDocument:
        """Store one document with its sections; the identifier must be new"""
        existing = (
            await db.execute(select(LegalDocument.id).where(LegalDocument.identifier == document_in.identifier))
        ).scalar_one_or_none()
        if existing is not None:
            raise InvalidInputError(
                "Document already exists",
                details={"identifier": document_in.identifier},
            )

        texts = [section_text(document_in.title, s.title, s.content) for s in document_in.sections]
        vectors = await self._embed(texts)

        document = LegalDocument(
            identifier=document_in.identifier,
            type=document_in.type.value,
            title=document_in.title,
            content=document_in.content,
            url=document_in.url,
            published_at=document_in.published_at,
            effective_from=document_in.effective_from,
            effective_to=document_in.effective_to,
            doc_metadata=document_in.metadata,
        )
        sections = [
            DocumentSection(
                section_number=s.section_number,
                title=s.title,
                content=s.content,
                embedding=(encode_embedding(vector) if vector is not None else None),
            )
            for s, vector in zip(document_in.sections, vectors)
        ]
        document.sections = sections
        db.add(document)
        await db.commit()
        await db.refresh(document)

        if self.retriever is not None:
            _ = await self.retriever.index_sections(document, sections, vectors)
        logger.info("document ingested identifier=%s sections=%s", document.identifier, len(sections))
        return document
