"""Legal search, source listing and contextual help"""
import logging
from typing import Annotated

from fastapi import APIRouter
from fastapi import Query as QueryParam
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.legal_document import DocumentType, LegalDocument
from ..schemas.chat import SourceType
from ..schemas.legal import (
    Citations,
    ContextualHelpRequest,
    ContextualHelpResponse,
    LegalDocumentResponse,
    LegalSearchResponse,
    SearchContext,
)
from ..utils.deps import DbSession, OrchestratorDep

router = APIRouter(tags=["Legal sources"])

logger = logging.getLogger(__name__)

DOCUMENT_LIST_LIMIT = 100


@router.get("/legal/search", response_model=LegalSearchResponse, summary="Search Finnish legal sources")
async def search(
    query: Annotated[str, QueryParam(min_length=1, max_length=2000)],
    orchestrator: OrchestratorDep,
):
    analysis = await orchestrator.analyze(query.strip())
    sources = analysis.sources
    logger.info("legal_search chars=%s sources=%s fallback=%s", len(query), len(sources), analysis.metadata.fallback)
    return LegalSearchResponse(
        answer=analysis.generated.answer,
        confidence=analysis.generated.confidence,
        citations=Citations(
            statutes=[s for s in sources if s.type == SourceType.FINLEX],
            cases=[],
            guidelines=[s for s in sources if s.type == SourceType.KKV],
        ),
        context=SearchContext(relevant_sections=[s.section for s in sources if s.section]),
        metadata=analysis.metadata,
    )


async def _documents_of_type(db: AsyncSession, doc_type: DocumentType) -> list[LegalDocumentResponse]:
    result = await db.execute(
        select(LegalDocument)
        .where(LegalDocument.type == doc_type.value)
        .order_by(LegalDocument.published_at.desc(), LegalDocument.id.desc())
        .limit(DOCUMENT_LIST_LIMIT)
    )
    return [LegalDocumentResponse.from_document(d) for d in result.scalars().all()]


@router.get("/legal/statutes", response_model=list[LegalDocumentResponse], summary="Stored statutes")
async def list_statutes(db: DbSession):
    return await _documents_of_type(db, DocumentType.STATUTE)


@router.get("/legal/guidelines", response_model=list[LegalDocumentResponse], summary="Stored guidelines")
async def list_guidelines(db: DbSession):
    return await _documents_of_type(db, DocumentType.GUIDELINE)


@router.post("/contextual-help", response_model=ContextualHelpResponse, summary="Explain a topic in context")
async def contextual_help(data: ContextualHelpRequest, orchestrator: OrchestratorDep):
    parts = [f"Topic: {data.context.title.strip()}"]
    if data.context.description.strip():
        parts.append(f"Description: {data.context.description.strip()}")
    message = str(data.message or "").strip()
    parts.append(message or "Explain this topic and the legal rules that apply to it.")

    analysis = await orchestrator.analyze("\n".join(parts))
    return ContextualHelpResponse(content=analysis.generated.answer, sources=analysis.sources)
