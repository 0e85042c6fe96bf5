# routers/aggregations.py — Reporting endpoints
#
# Access rules live in the check_* helpers so the RPC surface applies
# exactly the same ones.
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import reporting
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotAuthorizedError
from permissions import (
    can_view_project, can_view_team_performance, can_view_user_activity,
)
from project_service import get_project_or_404

router = APIRouter(prefix="/api/v1/aggregations", tags=["Aggregations"])


async def check_project_statistics(db: AsyncSession, user: CurrentUser, project_id: str) -> None:
    project = await get_project_or_404(db, project_id)
    if not can_view_project(user, project):
        raise NotAuthorizedError("No access to this project")


def check_team_performance(user: CurrentUser) -> None:
    if not can_view_team_performance(user):
        raise NotAuthorizedError("Only managers and admins can view team performance")


def check_activity_timeline(user: CurrentUser, user_id: Optional[str]) -> None:
    if not can_view_user_activity(user, user_id):
        raise NotAuthorizedError("Cannot view other users activity")


@router.get("/user-statistics")
async def user_statistics(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Statistics for the caller's assigned tasks"""
    return await reporting.get_user_statistics(db, user.id)


@router.get("/projects/{project_id}")
async def project_statistics(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await check_project_statistics(db, user, project_id)
    return await reporting.get_project_statistics(db, project_id)


@router.get("/team-performance")
async def team_performance(
    project_id: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    check_team_performance(user)
    return await reporting.get_team_performance(db, project_id)


@router.get("/activity-timeline")
async def activity_timeline(
    user_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    days: int = Query(30, ge=1, le=reporting.TIMELINE_MAX_DAYS),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    check_activity_timeline(user, user_id)
    return await reporting.get_activity_timeline(db, user_id=user_id, entity_id=entity_id, days=days)


@router.get("/priority-distribution")
async def priority_distribution(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await reporting.get_priority_distribution(db)
