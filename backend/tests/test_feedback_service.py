import pytest

from lakiapu.exceptions import InvalidInputError, NotFoundError
from lakiapu.models import ChatSession, Query
from lakiapu.services.feedback_service import FeedbackService, validate_feedback


async def _query(db) -> Query:
    session = ChatSession(title="New Chat")
    db.add(session)
    await db.flush()
    query = Query(session_id=session.id, question="Kysymys", answer="Vastaus", sources=[], attachments=[])
    db.add(query)
    await db.commit()
    return query


@pytest.mark.parametrize("rating", [0, 6, -1, 2.5, 3.0, True, False, "3", None])
def test_validate_feedback_rejects_bad_ratings(rating) -> None:
    with pytest.raises(InvalidInputError):
        _ = validate_feedback(rating, True)


@pytest.mark.parametrize("helpful", [1, 0, "true", None])
def test_validate_feedback_rejects_non_boolean_helpful(helpful) -> None:
    with pytest.raises(InvalidInputError):
        _ = validate_feedback(3, helpful)


def test_validate_feedback_accepts_bounds() -> None:
    assert validate_feedback(1, False) == (1, False)
    assert validate_feedback(5, True) == (5, True)


@pytest.mark.asyncio
async def test_submit_appends_and_lists(test_session) -> None:
    service = FeedbackService()
    query = await _query(test_session)

    first = await service.submit(test_session, query.session_id, query.id, 3, True, "  ")
    second = await service.submit(test_session, query.session_id, query.id, 1, False, " Epäselvä vastaus ")

    assert first.comment is None
    assert second.comment == "Epäselvä vastaus"
    assert first.id != second.id

    rows = await service.list_for_query(test_session, query.session_id, query.id)
    assert [(r.rating, r.helpful) for r in rows] == [(3, True), (1, False)]


@pytest.mark.asyncio
async def test_submit_invalid_rating_stores_nothing(test_session) -> None:
    service = FeedbackService()
    query = await _query(test_session)

    with pytest.raises(InvalidInputError):
        _ = await service.submit(test_session, query.session_id, query.id, 7, True)

    assert await service.list_for_query(test_session, query.session_id, query.id) == []


@pytest.mark.asyncio
async def test_submit_unknown_query_or_wrong_session(test_session) -> None:
    service = FeedbackService()
    query = await _query(test_session)

    with pytest.raises(NotFoundError):
        _ = await service.submit(test_session, query.session_id, query.id + 100, 3, True)
    with pytest.raises(NotFoundError):
        _ = await service.submit(test_session, query.session_id + 100, query.id, 3, True)
