"""
Quiz Assessment Platform
Student statistics and listing API routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..dependencies import require_admin
from ..exceptions import MissingFieldException
from ..services.reporting import get_student_stats as compute_student_stats
from ..services.reporting import get_students_listing

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


@router.get("/get_student_stats")
async def get_student_stats(
    email: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """First-attempt totals for a returning student"""
    if not email or not email.strip():
        raise MissingFieldException("email")

    return await compute_student_stats(db, email.strip())


@router.get("/get_students", dependencies=[Depends(require_admin)])
async def get_students(
    quiz_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Students with attempts, optionally restricted to one quiz"""
    return await get_students_listing(db, quiz_id)


__all__ = ["router"]
