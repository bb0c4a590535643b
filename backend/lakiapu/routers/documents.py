"""Uploaded and stored document listings"""
from fastapi import APIRouter
from sqlalchemy import case, func, select

from ..models.chat import Query
from ..models.feedback import Feedback
from ..models.legal_document import LegalDocument
from ..schemas.legal import DocumentCategory, PopularDocument, RecentDocument
from ..utils.deps import DbSession

router = APIRouter(prefix="/documents", tags=["Documents"])

RECENT_LIMIT = 10
# recent queries scanned for attachments
RECENT_SCAN_LIMIT = 200

# always listed, even before any document carries them
DEFAULT_CATEGORIES = ("Contracts", "Legal Opinions", "Court Documents", "Legislation")


@router.get("/recent", response_model=list[RecentDocument], summary="Latest queries with attachments")
async def recent_documents(db: DbSession):
    result = await db.execute(
        select(Query).order_by(Query.created_at.desc(), Query.id.desc()).limit(RECENT_SCAN_LIMIT)
    )
    out: list[RecentDocument] = []
    for q in result.scalars().all():
        if not q.attachments:
            continue
        out.append(
            RecentDocument(
                query_id=q.id,
                session_id=q.session_id,
                question=q.question,
                attachments=q.attachments,
                created_at=q.created_at,
            )
        )
        if len(out) >= RECENT_LIMIT:
            break
    return out


@router.get("/popular", response_model=list[PopularDocument], summary="Attachments whose answers were rated helpful")
async def popular_documents(db: DbSession):
    """
    Queries with attachments, most helpful-rated answers first.

    Ties, including answers without feedback, fall back to newest first.
    """
    stats = (
        select(
            Feedback.query_id.label("query_id"),
            func.sum(case((Feedback.helpful.is_(True), 1), else_=0)).label("helpful_count"),
            func.avg(Feedback.rating).label("average_rating"),
        )
        .group_by(Feedback.query_id)
        .subquery()
    )
    helpful = func.coalesce(stats.c.helpful_count, 0)
    result = await db.execute(
        select(Query, helpful, stats.c.average_rating)
        .outerjoin(stats, stats.c.query_id == Query.id)
        .order_by(helpful.desc(), Query.created_at.desc(), Query.id.desc())
        .limit(RECENT_SCAN_LIMIT)
    )
    out: list[PopularDocument] = []
    for q, helpful_count, average_rating in result.all():
        if not q.attachments:
            continue
        out.append(
            PopularDocument(
                query_id=q.id,
                session_id=q.session_id,
                question=q.question,
                attachments=q.attachments,
                created_at=q.created_at,
                helpful_count=int(helpful_count or 0),
                average_rating=(float(average_rating) if average_rating is not None else None),
            )
        )
        if len(out) >= RECENT_LIMIT:
            break
    return out


@router.get("/categories", response_model=list[DocumentCategory], summary="Document categories")
async def document_categories(db: DbSession):
    """Default categories plus every `metadata.category` of stored legal documents, with document counts"""
    category = LegalDocument.doc_metadata["category"].as_string()
    result = await db.execute(
        select(category, func.count(LegalDocument.id)).where(category.is_not(None)).group_by(category)
    )
    counts: dict[str, int] = {name: 0 for name in DEFAULT_CATEGORIES}
    for name, count in result.all():
        if name and str(name).strip():
            key = str(name).strip()
            counts[key] = counts.get(key, 0) + int(count)
    return [DocumentCategory(category=name, count=count) for name, count in counts.items()]
