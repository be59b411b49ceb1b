"""
Quiz Assessment Platform
Answer grading and score calculation
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from ..database.models import Question
from ..exceptions import ValidationException, InvalidInputException

# Selected index meaning "no option chosen"; None is accepted too
UNANSWERED = -1


@dataclass(frozen=True)
class AnswerSubmission:
    question_id: str
    selected_option_index: Optional[int]
    is_correct: bool


@dataclass(frozen=True)
class ScoreResult:
    score: int
    total: int
    percentage: float  # unrounded


def is_unanswered(selected_option_index: Optional[int]) -> bool:
    return selected_option_index is None or selected_option_index == UNANSWERED


def score_answers(answers: Sequence[AnswerSubmission]) -> ScoreResult:
    """Count correct answers; percentage is 0 for an empty submission"""
    score = sum(1 for answer in answers if answer.is_correct)
    total = len(answers)
    percentage = (score / total) * 100 if total > 0 else 0.0
    return ScoreResult(score=score, total=total, percentage=percentage)


def grade_answers(
    answers: Iterable[dict],
    questions: Iterable[Question],
    trust_client_correctness: bool = False
) -> List[AnswerSubmission]:
    """Validate raw answers against the quiz's questions and resolve correctness.

    Each raw answer is a mapping with ``question_id``, ``selected_option_index``
    and, optionally, ``is_correct``. The whole batch is rejected if any entry
    is malformed, so nothing is scored from a partially valid submission.

    Correctness comes from ``Question.correct_option_index`` unless
    ``trust_client_correctness`` is set, in which case the client's
    ``is_correct`` is taken as-is and becomes mandatory.
    """
    questions_by_id: Dict[str, Question] = {question.id: question for question in questions}
    seen = set()
    graded = []

    for position, answer in enumerate(answers):
        question_id = answer.get("question_id")
        selected = answer.get("selected_option_index")

        if not question_id:
            raise ValidationException(
                "Answer is missing its question id",
                field=f"answers[{position}].questionId"
            )

        question = questions_by_id.get(question_id)
        if question is None:
            raise InvalidInputException(
                f"answers[{position}].questionId",
                "question does not belong to this quiz"
            )

        if question_id in seen:
            raise InvalidInputException(
                f"answers[{position}].questionId",
                "question answered more than once"
            )
        seen.add(question_id)

        option_count = len(question.options or [])
        if not is_unanswered(selected) and not 0 <= selected < option_count:
            raise InvalidInputException(
                f"answers[{position}].selectedOptionIndex",
                "option index out of range"
            )

        if trust_client_correctness:
            is_correct = answer.get("is_correct")
            if is_correct is None:
                raise ValidationException(
                    "Answer is missing its correctness flag",
                    field=f"answers[{position}].isCorrect"
                )
        else:
            is_correct = (
                not is_unanswered(selected)
                and selected == question.correct_option_index
            )

        graded.append(AnswerSubmission(
            question_id=question_id,
            selected_option_index=selected,
            is_correct=bool(is_correct)
        ))

    return graded


__all__ = [
    "UNANSWERED",
    "AnswerSubmission",
    "ScoreResult",
    "is_unanswered",
    "score_answers",
    "grade_answers",
]
