import os

os.environ.setdefault("ENVIRONMENT", "testing")

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from quiz_assessment.backend.api.auth import create_access_token
from quiz_assessment.backend.app import create_app
from quiz_assessment.backend.database.connection import Database
from quiz_assessment.backend.database.models import (
    Question, Quiz, QuizAttempt, Student, StudentAnswer
)
from quiz_assessment.backend.dependencies import ROLE_ADMIN, ROLE_STUDENT
from quiz_assessment.config import TestingSettings

QUIZ_ID = "Q1"
OTHER_QUIZ_ID = "Q2"


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio calls the rate limiter makes"""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = str(value)
        self.expiry[key] = ttl

    async def incr(self, key):
        self.store[key] = str(int(self.store.get(key, 0)) + 1)
        return int(self.store[key])

    async def delete(self, key):
        self.store.pop(key, None)
        self.expiry.pop(key, None)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def settings():
    return TestingSettings()


async def _make_database(settings, enforce_unique_attempts):
    database = Database(settings)
    await database.create_tables(enforce_unique_attempts)
    async with database.session() as session:
        session.add_all([
            Quiz(
                id=QUIZ_ID,
                title={"en": "General knowledge", "fr": "Culture générale"},
                description={"en": "Three questions"},
                duration=600
            ),
            Quiz(
                id=OTHER_QUIZ_ID,
                title={"en": "Arithmetic"},
                description={"en": "Two questions"},
                duration=300
            ),
        ])
        await session.flush()
        session.add_all([
            Question(id="q1", quiz_id=QUIZ_ID, question_text={"en": "First"},
                     options=[{"en": "a"}, {"en": "b"}, {"en": "c"}], correct_option_index=0),
            Question(id="q2", quiz_id=QUIZ_ID, question_text={"en": "Second"},
                     options=[{"en": "a"}, {"en": "b"}, {"en": "c"}], correct_option_index=1),
            Question(id="q3", quiz_id=QUIZ_ID, question_text={"en": "Third"},
                     options=[{"en": "a"}, {"en": "b"}, {"en": "c"}], correct_option_index=2),
            Question(id="m1", quiz_id=OTHER_QUIZ_ID, question_text={"en": "1 + 1"},
                     options=[{"en": "2"}, {"en": "3"}], correct_option_index=0),
            Question(id="m2", quiz_id=OTHER_QUIZ_ID, question_text={"en": "2 + 2"},
                     options=[{"en": "4"}, {"en": "5"}], correct_option_index=0),
        ])
        await session.commit()
    return database


@pytest.fixture
async def database(settings):
    database = await _make_database(settings, enforce_unique_attempts=True)
    yield database
    await database.dispose()


@pytest.fixture
async def unconstrained_database(settings):
    """Store without the attempt uniqueness index, for duplicate-row fixtures"""
    database = await _make_database(settings, enforce_unique_attempts=False)
    yield database
    await database.dispose()


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers(settings):
    token = create_access_token(1, ROLE_ADMIN, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_token_for(settings):
    def make(student_id):
        return create_access_token(student_id, ROLE_STUDENT, settings)
    return make


@pytest.fixture
def add_attempt():
    """Insert an attempt with explicit timestamps and answers, bypassing the guard"""

    async def add(session, student_id, quiz_id, percentage, answers=(),
                  completed_at=None, duration_seconds=60):
        completed_at = completed_at or datetime(2024, 5, 1, 12, 0, 0)
        attempt = QuizAttempt(
            student_id=student_id,
            quiz_id=quiz_id,
            score_percentage=percentage,
            started_at=completed_at - timedelta(seconds=duration_seconds),
            completed_at=completed_at
        )
        session.add(attempt)
        await session.flush()
        session.add_all([
            StudentAnswer(
                attempt_id=attempt.id,
                question_id=question_id,
                selected_option_index=selected,
                is_correct=is_correct
            )
            for question_id, selected, is_correct in answers
        ])
        await session.commit()
        return attempt.id

    return add


@pytest.fixture
def add_student():
    async def add(session, name, email, password_hash=None, created_at=None):
        student = Student(name=name, email=email, password_hash=password_hash)
        if created_at is not None:
            student.created_at = created_at
        session.add(student)
        await session.commit()
        return student.id

    return add
