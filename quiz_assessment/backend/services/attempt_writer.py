"""
Quiz Assessment Platform
Transactional persistence of a scored attempt
"""

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import QuizAttempt, StudentAnswer
from ..exceptions import InvalidInputException, PersistenceException
from ..utils.helpers import epoch_ms_to_datetime, utcnow
from .scoring import AnswerSubmission, ScoreResult

# Configure logging
logger = logging.getLogger(__name__)


def to_started_at(started_at_ms: int) -> datetime:
    """Client start time as stored; only unrepresentable values are rejected"""
    try:
        return epoch_ms_to_datetime(started_at_ms)
    except (OverflowError, ValueError, OSError):
        raise InvalidInputException("startTime", "not a representable epoch timestamp")


async def write_attempt(
    db: AsyncSession,
    student_id: int,
    quiz_id: str,
    answers: Sequence[AnswerSubmission],
    score_result: ScoreResult,
    started_at_ms: int
) -> int:
    """Insert the attempt and all of its answers, then commit.

    Either everything is committed or the session is rolled back. A
    uniqueness violation is re-raised as IntegrityError so the caller can
    answer with the existing attempt; any other store failure becomes a
    PersistenceException. Never retries.
    """
    started_at = to_started_at(started_at_ms)

    try:
        attempt = QuizAttempt(
            student_id=student_id,
            quiz_id=quiz_id,
            score_percentage=score_result.percentage,
            started_at=started_at,
            completed_at=utcnow()
        )
        db.add(attempt)
        await db.flush()

        db.add_all([
            StudentAnswer(
                attempt_id=attempt.id,
                question_id=answer.question_id,
                selected_option_index=answer.selected_option_index,
                is_correct=answer.is_correct
            )
            for answer in answers
        ])
        await db.commit()

    except IntegrityError:
        await db.rollback()
        raise

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Attempt write failed for student {student_id}, quiz {quiz_id}: {e}")
        raise PersistenceException("write_attempt")

    return attempt.id


__all__ = ["to_started_at", "write_attempt"]
