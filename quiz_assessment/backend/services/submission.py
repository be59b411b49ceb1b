"""
Quiz Assessment Platform
Quiz submission workflow: resolve the student, guard against repeats,
score and persist.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Question, Quiz, Student
from ..exceptions import (
    InvalidInputException,
    PersistenceException,
    TokenInvalidException
)
from ..utils.helpers import round_percentage
from .attempt_guard import AttemptSummary, find_existing_attempt
from .attempt_writer import to_started_at, write_attempt
from .identity import find_student, resolve_or_create_student
from .scoring import grade_answers, score_answers

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentClaim:
    name: str
    email: str = ""
    phone: Optional[str] = None
    wilaya: Optional[str] = None


@dataclass(frozen=True)
class SubmissionOutcome:
    attempt_id: int
    percentage: float  # unrounded
    already_attempted: bool = False
    score: Optional[int] = None
    total: Optional[int] = None

    @classmethod
    def replay(cls, summary: AttemptSummary) -> "SubmissionOutcome":
        return cls(
            attempt_id=summary.attempt_id,
            percentage=summary.score_percentage,
            already_attempted=True
        )

    def to_response(self) -> Dict[str, Any]:
        if self.already_attempted:
            return {
                "success": True,
                "alreadyAttempted": True,
                "attemptId": self.attempt_id,
                "percentage": round_percentage(self.percentage)
            }
        return {
            "success": True,
            "attemptId": self.attempt_id,
            "score": self.score,
            "total": self.total,
            "percentage": round_percentage(self.percentage)
        }


async def _load_quiz_questions(db: AsyncSession, quiz_id: str) -> List[Question]:
    quiz = await db.get(Quiz, quiz_id)
    if quiz is None:
        raise InvalidInputException("quizId", "unknown quiz")

    result = await db.execute(
        select(Question).where(Question.quiz_id == quiz_id).order_by(Question.id)
    )
    return list(result.scalars().all())


async def _identify_student(
    db: AsyncSession,
    claim: StudentClaim,
    authenticated_student_id: Optional[int],
    policy: str
) -> int:
    if authenticated_student_id is not None:
        if await db.get(Student, authenticated_student_id) is None:
            raise TokenInvalidException("Unknown student in access token")
        return authenticated_student_id

    return await resolve_or_create_student(
        db,
        name=claim.name,
        email=claim.email,
        phone=claim.phone,
        wilaya=claim.wilaya,
        policy=policy
    )


async def _recover_existing_attempt(
    db: AsyncSession,
    claim: StudentClaim,
    authenticated_student_id: Optional[int],
    quiz_id: str,
    policy: str
) -> Optional[AttemptSummary]:
    """Re-run the guard's read path after a uniqueness violation"""
    if authenticated_student_id is not None:
        student_id = authenticated_student_id
    else:
        student = await find_student(db, claim.name, claim.email or "", policy)
        if student is None:
            return None
        student_id = student.id

    return await find_existing_attempt(db, student_id, quiz_id)


async def submit_quiz_attempt(
    db: AsyncSession,
    settings,
    claim: StudentClaim,
    quiz_id: str,
    raw_answers: List[dict],
    start_time: int,
    authenticated_student_id: Optional[int] = None
) -> SubmissionOutcome:
    """Score and store a submission, or replay the student's earlier result.

    Every validation step runs before the first write. A repeated
    submission for the same (student, quiz) is a successful replay, never
    a second attempt row.
    """
    policy = settings.IDENTITY_RESOLUTION

    try:
        questions = await _load_quiz_questions(db, quiz_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading quiz {quiz_id} failed: {e}")
        raise PersistenceException("load_quiz")

    graded = grade_answers(raw_answers, questions, settings.TRUST_CLIENT_CORRECTNESS)
    to_started_at(start_time)

    student_id = await _identify_student(db, claim, authenticated_student_id, policy)

    try:
        existing = await find_existing_attempt(db, student_id, quiz_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Attempt lookup failed for student {student_id}, quiz {quiz_id}: {e}")
        raise PersistenceException("find_attempt")

    if existing:
        await db.commit()
        logger.info(
            f"Replaying attempt {existing.attempt_id} for student {student_id}, quiz {quiz_id}"
        )
        return SubmissionOutcome.replay(existing)

    score_result = score_answers(graded)

    try:
        attempt_id = await write_attempt(
            db,
            student_id=student_id,
            quiz_id=quiz_id,
            answers=graded,
            score_result=score_result,
            started_at_ms=start_time
        )
    except IntegrityError as e:
        logger.warning(
            f"Attempt insert conflicted for student {student_id}, quiz {quiz_id}; "
            f"re-checking for an existing attempt"
        )
        try:
            existing = await _recover_existing_attempt(
                db, claim, authenticated_student_id, quiz_id, policy
            )
        except SQLAlchemyError as lookup_error:
            logger.error(f"Attempt re-check failed: {lookup_error}")
            raise PersistenceException("find_attempt")

        if existing is None:
            logger.error(f"Attempt write failed without a conflicting attempt: {e}")
            raise PersistenceException("write_attempt")

        logger.info(
            f"Replaying attempt {existing.attempt_id} after concurrent submission"
        )
        return SubmissionOutcome.replay(existing)

    logger.info(
        f"Stored attempt {attempt_id} for student {student_id}, quiz {quiz_id}: "
        f"{score_result.score}/{score_result.total}"
    )
    return SubmissionOutcome(
        attempt_id=attempt_id,
        percentage=score_result.percentage,
        score=score_result.score,
        total=score_result.total
    )


__all__ = [
    "StudentClaim",
    "SubmissionOutcome",
    "submit_quiz_attempt",
]
