"""
Quiz Assessment Platform
SQLAlchemy Database Models
"""

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, String, Float,
    ForeignKey, JSON, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from ..utils.helpers import utcnow

# Base class for all models
Base = declarative_base()


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, default="")
    phone = Column(String(32))
    wilaya = Column(String(100))
    password_hash = Column(String(255))  # NULL for guest students
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    attempts = relationship("QuizAttempt", back_populates="student")

    __table_args__ = (
        Index("uq_student_name_email", "name", "email", unique=True),
        Index("idx_student_email", "email"),
    )

    @property
    def has_account(self) -> bool:
        return self.password_hash is not None


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# Quiz content is synchronized by an external process and is read-only here
class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(100), primary_key=True)
    title = Column(JSON, nullable=False)  # {"en": ..., "fr": ..., "ar": ...}
    description = Column(JSON)
    duration = Column(Integer)  # seconds

    # Relationships
    questions = relationship("Question", back_populates="quiz")
    attempts = relationship("QuizAttempt", back_populates="quiz")


class Question(Base):
    __tablename__ = "questions"

    id = Column(String(100), primary_key=True)
    quiz_id = Column(String(100), ForeignKey("quizzes.id"), nullable=False, index=True)
    question_text = Column(JSON, nullable=False)
    options = Column(JSON, nullable=False, default=list)
    correct_option_index = Column(Integer, nullable=False)

    # Relationships
    quiz = relationship("Quiz", back_populates="questions")


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    quiz_id = Column(String(100), ForeignKey("quizzes.id"), nullable=False)
    score_percentage = Column(Float, nullable=False)  # unrounded
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    student = relationship("Student", back_populates="attempts")
    quiz = relationship("Quiz", back_populates="attempts")
    answers = relationship("StudentAnswer", back_populates="attempt", order_by="StudentAnswer.id")

    # The (student_id, quiz_id) unique index is created separately, see
    # connection.ATTEMPT_UNIQUE_INDEX_DDL
    __table_args__ = (
        Index("idx_attempt_student_quiz", "student_id", "quiz_id"),
        Index("idx_attempt_completed", "completed_at"),
        CheckConstraint(
            "score_percentage >= 0 AND score_percentage <= 100",
            name="valid_score_percentage"
        ),
    )


class StudentAnswer(Base):
    __tablename__ = "student_answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id"), nullable=False)
    question_id = Column(String(100), ForeignKey("questions.id"), nullable=False)
    selected_option_index = Column(Integer)  # -1 or NULL means unanswered
    is_correct = Column(Boolean, nullable=False, default=False)

    # Relationships
    attempt = relationship("QuizAttempt", back_populates="answers")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="_attempt_question_uc"),
        Index("idx_answer_attempt_correct", "attempt_id", "is_correct"),
    )


__all__ = [
    "Base",
    "Student", "Admin",
    "Quiz", "Question",
    "QuizAttempt", "StudentAnswer",
]
