"""
Quiz Assessment Platform
Read-side reporting: dashboard, per-student stats, results and leaderboard

Per-student and results views count only the first attempt of each
(student, quiz) pair, where "first" means lowest attempt id.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sqlalchemy import case, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Question, Quiz, QuizAttempt, Student, StudentAnswer
from ..exceptions import AttemptNotFoundException, InvalidInputException
from ..utils.helpers import elapsed_seconds, round_half_up, round_percentage
from .identity import find_student_by_email

# Configure logging
logger = logging.getLogger(__name__)

ALL_QUIZZES = "all"
ALL_QUIZZES_TITLE = {"en": "All Quizzes", "fr": "Tous les quiz", "ar": "كل الاختبارات"}

SORT_HIGH_TO_LOW = "high-to-low"
SORT_LOW_TO_HIGH = "low-to-high"
SORT_ORDERS = (SORT_HIGH_TO_LOW, SORT_LOW_TO_HIGH)


def performance_level(percentage: float) -> str:
    """Dashboard bucket for an unrounded percentage"""
    if percentage >= 90:
        return "excellent"
    elif percentage >= 70:
        return "good"
    elif percentage >= 50:
        return "average"
    else:
        return "needs_improvement"


def first_attempt_ids():
    """Subquery of the lowest attempt id per (student, quiz)"""
    return (
        select(func.min(QuizAttempt.id).label("first_id"))
        .group_by(QuizAttempt.student_id, QuizAttempt.quiz_id)
        .subquery()
    )


def is_quiz_filter(quiz_id: Optional[str]) -> bool:
    return bool(quiz_id) and quiz_id != ALL_QUIZZES


# Dashboard
async def get_dashboard_stats(
    db: AsyncSession,
    recent_limit: int = 10,
    top_limit: int = 5
) -> Dict[str, Any]:
    """Aggregates over every attempt row, not only first attempts"""
    total_students = (await db.execute(select(func.count(Student.id)))).scalar() or 0
    total_quizzes = (await db.execute(select(func.count(Quiz.id)))).scalar() or 0

    score = QuizAttempt.score_percentage
    totals = (await db.execute(
        select(
            func.count(QuizAttempt.id).label("total_attempts"),
            func.avg(score).label("average_score"),
            func.sum(case((score >= 90, 1), else_=0)).label("excellent"),
            func.sum(case(((score >= 70) & (score < 90), 1), else_=0)).label("good"),
            func.sum(case(((score >= 50) & (score < 70), 1), else_=0)).label("average"),
            func.sum(case((score < 50, 1), else_=0)).label("needs_improvement"),
        )
    )).one()

    # Quiz distribution
    counts = (
        select(QuizAttempt.quiz_id, func.count(QuizAttempt.id).label("attempt_count"))
        .group_by(QuizAttempt.quiz_id)
        .subquery()
    )
    distribution = await db.execute(
        select(Quiz.id, Quiz.title, counts.c.attempt_count)
        .join(counts, counts.c.quiz_id == Quiz.id)
        .order_by(desc(counts.c.attempt_count), Quiz.id)
    )

    # Recent performance
    recent = await db.execute(
        select(QuizAttempt.id, QuizAttempt.score_percentage, QuizAttempt.completed_at, Quiz.title)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .order_by(desc(QuizAttempt.completed_at), desc(QuizAttempt.id))
        .limit(recent_limit)
    )

    # Top students
    avg_score = func.avg(QuizAttempt.score_percentage).label("avg_score")
    top = await db.execute(
        select(Student.id, Student.name, avg_score)
        .join(QuizAttempt, QuizAttempt.student_id == Student.id)
        .group_by(Student.id, Student.name)
        .order_by(desc(avg_score), Student.id)
        .limit(top_limit)
    )

    return {
        "total_students": total_students,
        "total_quizzes_available": total_quizzes,
        "total_attempts": totals.total_attempts or 0,
        "average_score": round_percentage(totals.average_score),
        "performance_levels": {
            "excellent": int(totals.excellent or 0),
            "good": int(totals.good or 0),
            "average": int(totals.average or 0),
            "needs_improvement": int(totals.needs_improvement or 0),
        },
        "quiz_distribution": [
            {"quiz_id": row.id, "title": row.title, "attempt_count": row.attempt_count}
            for row in distribution
        ],
        "recent_performance": [
            {
                "id": row.id,
                "score_percentage": round_percentage(row.score_percentage),
                "completed_at": row.completed_at,
                "title": row.title,
                "performance_level": performance_level(row.score_percentage),
            }
            for row in recent
        ],
        "top_students": [
            {"id": row.id, "name": row.name, "avg_score": round_percentage(row.avg_score)}
            for row in top
        ],
    }


# Per-student stats
async def get_student_stats(db: AsyncSession, email: str) -> Dict[str, Any]:
    """First-attempt count and mean score for the student owning ``email``"""
    student = await find_student_by_email(db, email)
    if student is None:
        return {"totalCompleted": 0, "avgScore": 0}

    first = first_attempt_ids()
    row = (await db.execute(
        select(
            func.count(QuizAttempt.id).label("completed"),
            func.avg(QuizAttempt.score_percentage).label("average")
        )
        .join(first, first.c.first_id == QuizAttempt.id)
        .where(QuizAttempt.student_id == student.id)
    )).one()

    if not row.completed:
        return {"totalCompleted": 0, "avgScore": 0}

    return {
        "totalCompleted": row.completed,
        "avgScore": round_half_up(row.average, 1),
    }


# Results listing
async def get_result_rows(db: AsyncSession, quiz_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """One row per first attempt, newest first, percentages unrounded"""
    first = first_attempt_ids()

    correct_answers = (
        select(func.count(StudentAnswer.id))
        .where(StudentAnswer.attempt_id == QuizAttempt.id, StudentAnswer.is_correct == True)
        .scalar_subquery()
    )
    total_questions = (
        select(func.count(StudentAnswer.id))
        .where(StudentAnswer.attempt_id == QuizAttempt.id)
        .scalar_subquery()
    )

    query = (
        select(
            QuizAttempt.id,
            QuizAttempt.score_percentage,
            QuizAttempt.started_at,
            QuizAttempt.completed_at,
            Student.id.label("student_id"),
            Student.name.label("student_name"),
            Student.email.label("student_email"),
            Student.phone.label("student_phone"),
            Student.wilaya.label("student_wilaya"),
            Student.password_hash.isnot(None).label("has_account"),
            Quiz.id.label("quiz_id"),
            Quiz.title.label("quiz_title"),
            correct_answers.label("correct_answers"),
            total_questions.label("total_questions"),
        )
        .join(first, first.c.first_id == QuizAttempt.id)
        .join(Student, Student.id == QuizAttempt.student_id)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .order_by(desc(QuizAttempt.completed_at), desc(QuizAttempt.id))
    )
    if is_quiz_filter(quiz_id):
        query = query.where(QuizAttempt.quiz_id == quiz_id)

    result = await db.execute(query)

    rows = []
    for row in result:
        rows.append({
            "id": row.id,
            "student_id": row.student_id,
            "student_name": row.student_name,
            "student_email": row.student_email,
            "student_phone": row.student_phone,
            "student_wilaya": row.student_wilaya,
            "has_account": bool(row.has_account),
            "quiz_id": row.quiz_id,
            "quiz_title": row.quiz_title,
            "score_percentage": row.score_percentage,
            "correct_answers": row.correct_answers or 0,
            "total_questions": row.total_questions or 0,
            "time_taken_seconds": elapsed_seconds(row.started_at, row.completed_at),
            "started_at": row.started_at,
            "completed_at": row.completed_at,
        })
    return rows


def rollup_all_quizzes(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse first-attempt rows into one "All Quizzes" row per student.

    Correct answers, questions and elapsed time are summed, completed_at is
    the latest one, and the percentage is recomputed from the sums.
    """
    if not rows:
        return []

    frame = pd.DataFrame(rows)
    totals = frame.groupby("student_id", sort=False).agg(
        correct_answers=("correct_answers", "sum"),
        total_questions=("total_questions", "sum"),
        time_taken_seconds=("time_taken_seconds", "sum"),
        completed_at=("completed_at", "max"),
    )

    correct = totals["correct_answers"].to_numpy(dtype=float)
    total = totals["total_questions"].to_numpy(dtype=float)
    percentages = np.divide(
        correct * 100, total, out=np.zeros_like(correct), where=total > 0
    )

    # Contact fields come from the student's newest first-attempt row
    identity = {}
    for row in rows:
        identity.setdefault(row["student_id"], row)

    rolled = []
    for (student_id, summary), percentage in zip(totals.iterrows(), percentages):
        source = identity[student_id]
        rolled.append({
            "id": source["id"],
            "student_id": int(student_id),
            "student_name": source["student_name"],
            "student_email": source["student_email"],
            "student_phone": source["student_phone"],
            "student_wilaya": source["student_wilaya"],
            "has_account": source["has_account"],
            "quiz_id": ALL_QUIZZES,
            "quiz_title": dict(ALL_QUIZZES_TITLE),
            "score_percentage": float(percentage),
            "correct_answers": int(summary["correct_answers"]),
            "total_questions": int(summary["total_questions"]),
            "time_taken_seconds": int(summary["time_taken_seconds"]),
            "completed_at": pd.Timestamp(summary["completed_at"]).to_pydatetime(),
        })

    rolled.sort(key=lambda row: row["completed_at"], reverse=True)
    return rolled


def sort_by_score(rows: List[Dict[str, Any]], sort: str = SORT_HIGH_TO_LOW) -> List[Dict[str, Any]]:
    """Order by unrounded percentage; elapsed time breaks ties.

    High-to-low puts the faster student first on a tie, low-to-high the
    slower one.
    """
    if sort not in SORT_ORDERS:
        raise InvalidInputException("sort", f"must be one of {', '.join(SORT_ORDERS)}")

    if sort == SORT_HIGH_TO_LOW:
        return sorted(rows, key=lambda row: (-row["score_percentage"], row["time_taken_seconds"]))
    return sorted(rows, key=lambda row: (row["score_percentage"], -row["time_taken_seconds"]))


def rank_results(rows: List[Dict[str, Any]], sort: str = SORT_HIGH_TO_LOW) -> List[Dict[str, Any]]:
    """Sorted copy of ``rows`` with a 1-based ``rank`` on each row"""
    return [
        {**row, "rank": position}
        for position, row in enumerate(sort_by_score(rows, sort), start=1)
    ]


def present_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Round percentages for display"""
    return [
        {**row, "score_percentage": round_percentage(row["score_percentage"])}
        for row in rows
    ]


async def get_results(
    db: AsyncSession,
    quiz_id: Optional[str] = None,
    sort: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Admin results: per-quiz first attempts, or the per-student rollup"""
    rows = await get_result_rows(db, quiz_id)
    if not is_quiz_filter(quiz_id):
        rows = rollup_all_quizzes(rows)
    if sort:
        rows = sort_by_score(rows, sort)
    return present_rows(rows)


async def get_leaderboard(
    db: AsyncSession,
    quiz_id: Optional[str] = None,
    sort: str = SORT_HIGH_TO_LOW
) -> List[Dict[str, Any]]:
    rows = await get_result_rows(db, quiz_id)
    if not is_quiz_filter(quiz_id):
        rows = rollup_all_quizzes(rows)
    return present_rows(rank_results(rows, sort))


# Result details
async def get_result_details(db: AsyncSession, attempt_id: int) -> Dict[str, Any]:
    """One attempt with each stored answer joined to its question"""
    result = await db.execute(
        select(
            QuizAttempt.id,
            QuizAttempt.score_percentage,
            QuizAttempt.started_at,
            QuizAttempt.completed_at,
            Student.name.label("student_name"),
            Quiz.id.label("quiz_id"),
            Quiz.title.label("quiz_title"),
        )
        .join(Student, Student.id == QuizAttempt.student_id)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .where(QuizAttempt.id == attempt_id)
    )
    attempt = result.first()
    if attempt is None:
        raise AttemptNotFoundException(attempt_id)

    answers = await db.execute(
        select(
            Question.id.label("question_id"),
            Question.question_text,
            Question.options,
            Question.correct_option_index,
            StudentAnswer.selected_option_index,
            StudentAnswer.is_correct,
        )
        .join(Question, Question.id == StudentAnswer.question_id)
        .where(StudentAnswer.attempt_id == attempt_id)
        .order_by(StudentAnswer.id)
    )

    return {
        "attempt": {
            "id": attempt.id,
            "score_percentage": round_percentage(attempt.score_percentage),
            "completed_at": attempt.completed_at,
            "time_taken_seconds": elapsed_seconds(attempt.started_at, attempt.completed_at),
            "student_name": attempt.student_name,
            "quiz_id": attempt.quiz_id,
            "quiz_title": attempt.quiz_title,
            "details": [
                {
                    "question_id": row.question_id,
                    "question_text": row.question_text,
                    "options": row.options,
                    "correct_option_index": row.correct_option_index,
                    "selected_option_index": row.selected_option_index,
                    "is_correct": bool(row.is_correct),
                }
                for row in answers
            ],
        }
    }


# Students listing
async def get_students_listing(db: AsyncSession, quiz_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Students with at least one attempt, newest registration first"""
    filtered = is_quiz_filter(quiz_id)

    correct_query = (
        select(func.count(StudentAnswer.id))
        .join(QuizAttempt, QuizAttempt.id == StudentAnswer.attempt_id)
        .where(QuizAttempt.student_id == Student.id, StudentAnswer.is_correct == True)
    )
    if filtered:
        correct_query = correct_query.where(QuizAttempt.quiz_id == quiz_id)
    total_correct = correct_query.correlate(Student).scalar_subquery()

    query = (
        select(
            Student.id,
            Student.name,
            Student.email,
            Student.phone,
            Student.wilaya,
            Student.created_at,
            Student.password_hash.isnot(None).label("has_account"),
            func.count(func.distinct(QuizAttempt.id)).label("attempts_count"),
            func.avg(QuizAttempt.score_percentage).label("avg_score"),
            func.max(QuizAttempt.completed_at).label("last_attempt"),
            total_correct.label("total_correct_answers"),
        )
        .join(QuizAttempt, QuizAttempt.student_id == Student.id)
        .group_by(Student.id)
        .order_by(desc(Student.created_at), desc(Student.id))
    )
    if filtered:
        query = query.where(QuizAttempt.quiz_id == quiz_id)

    result = await db.execute(query)
    return [
        {
            "id": row.id,
            "name": row.name,
            "email": row.email,
            "phone": row.phone,
            "wilaya": row.wilaya,
            "created_at": row.created_at,
            "has_account": bool(row.has_account),
            "attempts_count": row.attempts_count,
            "avg_score": round_percentage(row.avg_score),
            "last_attempt": row.last_attempt,
            "total_correct_answers": row.total_correct_answers or 0,
        }
        for row in result
    ]


__all__ = [
    "ALL_QUIZZES",
    "ALL_QUIZZES_TITLE",
    "SORT_HIGH_TO_LOW",
    "SORT_LOW_TO_HIGH",
    "performance_level",
    "first_attempt_ids",
    "get_dashboard_stats",
    "get_student_stats",
    "get_result_rows",
    "rollup_all_quizzes",
    "sort_by_score",
    "rank_results",
    "get_results",
    "get_leaderboard",
    "get_result_details",
    "get_students_listing",
]
