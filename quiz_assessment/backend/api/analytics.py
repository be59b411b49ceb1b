"""
Quiz Assessment Platform
Admin reporting API routes: dashboard, results, leaderboard, result details
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..dependencies import get_app_settings, require_admin
from ..services import reporting
from ...config import Settings

# Configure logging
logger = logging.getLogger(__name__)

# Router instance, every route is admin only
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/get_dashboard_stats")
async def get_dashboard_stats(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Dashboard aggregates over all attempts"""
    return await reporting.get_dashboard_stats(
        db,
        recent_limit=settings.RECENT_ATTEMPTS_LIMIT,
        top_limit=settings.TOP_STUDENTS_LIMIT
    )


@router.get("/get_results")
async def get_results(
    quiz_id: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """First-attempt results; without a quiz filter, one row per student"""
    return await reporting.get_results(db, quiz_id=quiz_id, sort=sort)


@router.get("/get_leaderboard")
async def get_leaderboard(
    quiz_id: Optional[str] = Query(None),
    sort: str = Query(reporting.SORT_HIGH_TO_LOW),
    db: AsyncSession = Depends(get_db)
):
    """Ranked results, faster students first on equal scores"""
    return await reporting.get_leaderboard(db, quiz_id=quiz_id, sort=sort)


@router.get("/get_result_details")
async def get_result_details(
    id: int = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """One attempt with its per-question answers"""
    return await reporting.get_result_details(db, id)


__all__ = ["router"]
