"""Answer feedback"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import InvalidInputError, NotFoundError
from ..models.chat import Query
from ..models.feedback import Feedback

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def validate_feedback(rating: object, helpful: object) -> tuple[int, bool]:
    """Rating must be a real integer 1-5 and helpful a real boolean"""
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidInputError(
            f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}",
            details={"field": "rating"},
        )
    if not isinstance(helpful, bool):
        raise InvalidInputError("Helpful must be a boolean", details={"field": "helpful"})
    return rating, helpful


class FeedbackService:
    async def _require_query(self, db: AsyncSession, session_id: int, query_id: int) -> Query:
        result = await db.execute(
            select(Query).where(Query.id == query_id, Query.session_id == session_id)
        )
        query = result.scalar_one_or_none()
        if query is None:
            raise NotFoundError("Query not found", details={"sessionId": session_id, "queryId": query_id})
        return query

    async def submit(
        self,
        db: AsyncSession,
        session_id: int,
        query_id: int,
        rating: object,
        helpful: object,
        comment: str | None = None,
    ) -> Feedback:
        """Append one feedback row; repeated submissions are kept"""
        rating_value, helpful_value = validate_feedback(rating, helpful)
        _ = await self._require_query(db, session_id, query_id)

        text = str(comment).strip() if comment is not None else ""
        feedback = Feedback(
            query_id=query_id,
            rating=rating_value,
            helpful=helpful_value,
            comment=text or None,
        )
        db.add(feedback)
        await db.commit()
        await db.refresh(feedback)
        logger.info("feedback stored query=%s rating=%s helpful=%s", query_id, rating_value, helpful_value)
        return feedback

    async def list_for_query(self, db: AsyncSession, session_id: int, query_id: int) -> list[Feedback]:
        _ = await self._require_query(db, session_id, query_id)
        result = await db.execute(
            select(Feedback)
            .where(Feedback.query_id == query_id)
            .order_by(Feedback.created_at.asc(), Feedback.id.asc())
        )
        return list(result.scalars().all())
