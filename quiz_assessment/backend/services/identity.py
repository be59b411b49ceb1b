"""
Quiz Assessment Platform
Student identity resolution
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Student
from ..exceptions import MissingFieldException, PersistenceException

# Configure logging
logger = logging.getLogger(__name__)

POLICY_NAME_EMAIL = "name_email"
POLICY_EMAIL = "email"


async def find_student(
    db: AsyncSession,
    name: str,
    email: str,
    policy: str = POLICY_NAME_EMAIL
) -> Optional[Student]:
    """Look up an existing student without creating one"""
    if policy == POLICY_EMAIL and email:
        result = await db.execute(
            select(Student)
            .where(func.lower(Student.email) == email.lower())
            .order_by(Student.id)
            .limit(1)
        )
    else:
        result = await db.execute(
            select(Student)
            .where(Student.name == name, Student.email == email)
            .order_by(Student.id)
            .limit(1)
        )
    return result.scalar_one_or_none()


async def find_student_by_email(db: AsyncSession, email: str) -> Optional[Student]:
    """Earliest student registered under this exact email"""
    result = await db.execute(
        select(Student)
        .where(Student.email == email)
        .order_by(Student.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_or_create_student(
    db: AsyncSession,
    name: str,
    email: str,
    phone: Optional[str] = None,
    wilaya: Optional[str] = None,
    policy: str = POLICY_NAME_EMAIL
) -> int:
    """Return the id of the matching student, inserting one if none exists.

    The name is matched exactly as given; it only has to be non-empty once
    trimmed. An existing record is returned untouched even when phone or
    wilaya differ. The insert is flushed but not committed, so it shares
    the caller's transaction.

    The insert must be the first write of that transaction: when a
    concurrent submission created the same identity first, the unique
    (name, email) index rejects ours, the transaction is rolled back and
    the other student's id is returned.
    """
    if not name or not name.strip():
        raise MissingFieldException("student.name")
    email = email or ""

    try:
        student = await find_student(db, name, email, policy)
        if student:
            return student.id

        student = Student(name=name, email=email, phone=phone, wilaya=wilaya)
        db.add(student)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            existing = await find_student(db, name, email, policy)
            if existing is None:
                raise
            logger.info(f"Student {existing.id} was created concurrently, reusing it")
            return existing.id

    except SQLAlchemyError as e:
        logger.error(f"Student resolution failed: {e}")
        raise PersistenceException("resolve_student")

    logger.info(f"Created student {student.id}")
    return student.id


__all__ = [
    "POLICY_NAME_EMAIL",
    "POLICY_EMAIL",
    "find_student",
    "find_student_by_email",
    "resolve_or_create_student",
]
