"""Chat session API routes"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status

from ..exceptions import LakiapuError, UploadTooLargeError
from ..middleware.rate_limit import chat_limiter
from ..schemas.chat import (
    ChatResponse,
    SessionAnalysis,
    SessionPin,
    SessionRename,
    SessionResponse,
)
from ..schemas.feedback import FeedbackCreate, FeedbackResponse
from ..services.chat_session import SessionWithQueries
from ..services.legal_query import IncomingFile
from ..utils.deps import ChatServiceDep, DbSession, FeedbackServiceDep, MetricsDep, QueryId, SessionId

router = APIRouter(prefix="/sessions", tags=["Chat sessions"])

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 64 * 1024


def _session_response(view: SessionWithQueries) -> SessionResponse:
    return SessionResponse.build(view.session, view.queries)


async def _read_uploads(uploads: list[UploadFile], limit: int) -> list[IncomingFile]:
    """Read uploads into memory, stopping as soon as the aggregate size passes `limit`"""
    files: list[IncomingFile] = []
    total = 0
    for upload in uploads:
        chunks: list[bytes] = []
        while True:
            chunk = await upload.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            total += len(chunk)
            if total > limit:
                raise UploadTooLargeError(
                    "Attachments exceed the size limit",
                    details={"maxBytes": limit},
                )
            chunks.append(chunk)
        files.append(
            IncomingFile(
                filename=str(upload.filename or "attachment"),
                content_type=str(upload.content_type or "application/octet-stream"),
                data=b"".join(chunks),
            )
        )
    return files


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED, summary="Create session")
async def create_session(db: DbSession, service: ChatServiceDep):
    return _session_response(await service.create_session(db))


@router.get("", response_model=list[SessionResponse], summary="List sessions")
async def list_sessions(db: DbSession, service: ChatServiceDep):
    """Newest first; each session carries only its latest query"""
    return [_session_response(v) for v in await service.list_sessions(db)]


@router.get("/{session_id}", response_model=SessionResponse, summary="Get session")
async def get_session(session_id: SessionId, db: DbSession, service: ChatServiceDep):
    return _session_response(await service.get_session(db, session_id))


@router.patch("/{session_id}", response_model=SessionResponse, summary="Rename session")
async def rename_session(session_id: SessionId, data: SessionRename, db: DbSession, service: ChatServiceDep):
    return _session_response(await service.rename_session(db, session_id, data.title))


@router.put("/{session_id}/pin", response_model=SessionResponse, summary="Pin or unpin session")
async def toggle_pin(session_id: SessionId, data: SessionPin, db: DbSession, service: ChatServiceDep):
    return _session_response(await service.toggle_pin(db, session_id, data.is_pinned))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete session")
async def delete_session(session_id: SessionId, db: DbSession, service: ChatServiceDep):
    await service.delete_session(db, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{session_id}/chat",
    response_model=ChatResponse,
    summary="Ask a question",
    dependencies=[Depends(chat_limiter)],
)
async def add_message(
    session_id: SessionId,
    request: Request,
    db: DbSession,
    service: ChatServiceDep,
    metrics: MetricsDep,
    question: Annotated[str, Form()] = "",
    language_mode: Annotated[str, Form(alias="languageMode")] = "regular",
    attachments: Annotated[list[UploadFile] | None, File()] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
):
    """
    Submit a message to a session.

    - multipart fields: `question`, `languageMode`, `attachments` (or `files`)
    - the first message of a session also sets its title
    """
    request_id = str(getattr(request.state, "request_id", "") or "")
    metrics.record_request()
    uploads = list(attachments or []) + list(files or [])
    logger.info("chat_request request_id=%s session=%s files=%s", request_id, session_id, len(uploads))

    try:
        incoming = await _read_uploads(uploads, service.max_attachment_bytes)
        result = await service.add_message(db, session_id, question, incoming, language_mode)
    except LakiapuError as e:
        metrics.record_failure(error_code=e.error_code, status_code=e.status_code)
        logger.info("chat_error request_id=%s session=%s code=%s", request_id, session_id, e.error_code)
        raise
    except Exception:
        metrics.record_failure(error_code="INTERNAL_ERROR", status_code=500)
        raise

    metrics.record_answer(processing_ms=result.metadata.processing_time, fallback=result.metadata.fallback)
    query = result.query
    return ChatResponse(
        id=query.id,
        answer=query.answer,
        sources=query.sources,
        attachments=query.attachments,
        confidence=query.confidence,
        metadata=result.metadata,
    )


@router.post(
    "/{session_id}/queries/{query_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Rate an answer",
)
async def add_feedback(
    session_id: SessionId,
    query_id: QueryId,
    data: FeedbackCreate,
    db: DbSession,
    service: FeedbackServiceDep,
):
    feedback = await service.submit(db, session_id, query_id, data.rating, data.helpful, data.comment)
    return FeedbackResponse.model_validate(feedback)


@router.get(
    "/{session_id}/queries/{query_id}/feedback",
    response_model=list[FeedbackResponse],
    summary="List feedback for an answer",
)
async def list_feedback(session_id: SessionId, query_id: QueryId, db: DbSession, service: FeedbackServiceDep):
    rows = await service.list_for_query(db, session_id, query_id)
    return [FeedbackResponse.model_validate(f) for f in rows]


@router.get("/{session_id}/analysis", response_model=SessionAnalysis, summary="Session analysis")
async def get_analysis(session_id: SessionId, db: DbSession, service: ChatServiceDep):
    return await service.analyze_session(db, session_id)