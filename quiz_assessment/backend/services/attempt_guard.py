"""
Quiz Assessment Platform
Duplicate attempt detection
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import QuizAttempt


@dataclass(frozen=True)
class AttemptSummary:
    attempt_id: int
    score_percentage: float


async def find_existing_attempt(
    db: AsyncSession,
    student_id: int,
    quiz_id: str
) -> Optional[AttemptSummary]:
    """Earliest attempt for the pair, if any.

    Ordered by id so the answer is stable even if duplicates slipped in
    before the unique index existed.
    """
    result = await db.execute(
        select(QuizAttempt.id, QuizAttempt.score_percentage)
        .where(
            QuizAttempt.student_id == student_id,
            QuizAttempt.quiz_id == quiz_id
        )
        .order_by(QuizAttempt.id)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None
    return AttemptSummary(attempt_id=row.id, score_percentage=row.score_percentage)


__all__ = ["AttemptSummary", "find_existing_attempt"]
