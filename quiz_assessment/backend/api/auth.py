"""
Quiz Assessment Platform
Authentication API routes: admin login, student signup and login
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Dict, Any

import jwt
from passlib.context import CryptContext
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..database.connection import get_db
from ..database.models import Admin, Student
from ..dependencies import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    get_app_settings,
    enforce_rate_limit,
    rate_limit_key
)
from ..exceptions import (
    InvalidCredentialsException,
    DuplicateResourceException,
    ValidationException
)
from ..services.identity import find_student_by_email
from ...config import Settings

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class AdminLoginRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError("Username is required")
        return v.strip()


class StudentSignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: Optional[str] = None
    wilaya: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError("Name is required")
        return v.strip()


class StudentLoginRequest(BaseModel):
    email: EmailStr
    password: str


# Password hashing
@lru_cache()
def get_password_context(rounds: int = 12) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password using bcrypt"""
    return get_password_context(rounds).hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against hash; guests have no hash and never verify"""
    if not hashed_password:
        return False
    return get_password_context().verify(plain_password, hashed_password)


def create_access_token(
    subject: Any,
    role: str,
    settings: Settings,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a signed bearer token carrying subject and role"""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def student_response_data(student: Student) -> Dict[str, Any]:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "phone": student.phone,
        "wilaya": student.wilaya,
        "has_account": student.has_account,
    }


# Authentication routes
@router.post("/login", dependencies=[Depends(enforce_rate_limit)])
async def login(
    payload: AdminLoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Authenticate an administrator and return an access token"""
    result = await db.execute(select(Admin).where(Admin.username == payload.username))
    admin = result.scalar_one_or_none()

    if not admin or not verify_password(payload.password, admin.password_hash):
        raise InvalidCredentialsException()

    await request.app.state.rate_limiter.reset(rate_limit_key(request))
    logger.info(f"Admin {admin.username} logged in")

    return {
        "success": True,
        "access_token": create_access_token(admin.id, ROLE_ADMIN, settings),
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "username": admin.username
    }


@router.post(
    "/student_signup",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_rate_limit)]
)
async def student_signup(
    payload: StudentSignupRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Register a student account; the email must not be in use"""
    if len(payload.password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationException(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long",
            field="password"
        )

    if await find_student_by_email(db, payload.email):
        raise DuplicateResourceException("student", "email")

    student = Student(
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        wilaya=payload.wilaya,
        password_hash=hash_password(payload.password, settings.BCRYPT_ROUNDS)
    )
    db.add(student)
    await db.commit()

    logger.info(f"New student registered: {student.id}")

    return {
        "success": True,
        "message": "Student registered successfully",
        "student": student_response_data(student)
    }


@router.post("/student_login", dependencies=[Depends(enforce_rate_limit)])
async def student_login(
    payload: StudentLoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Authenticate a registered student by email and password"""
    student = await find_student_by_email(db, payload.email)

    if not student or not verify_password(payload.password, student.password_hash):
        raise InvalidCredentialsException("Invalid email or password")

    await request.app.state.rate_limiter.reset(rate_limit_key(request))
    logger.info(f"Student {student.id} logged in")

    return {
        "success": True,
        "message": "Login successful",
        "student": student_response_data(student),
        "access_token": create_access_token(student.id, ROLE_STUDENT, settings),
        "token_type": "bearer"
    }


__all__ = [
    "router",
    "hash_password",
    "verify_password",
    "create_access_token",
]
