# routers/activity.py — Activity feeds
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import ActivityLog, Project, Task, EntityType, ProjectStatus
from project_service import visible_projects_clause
from routers.common import ts, enum_value

router = APIRouter(prefix="/api/v1/activity", tags=["Activity"])

MINE_MAX_LIMIT = 100
DASHBOARD_LIMIT = 50


class ActivityOut(BaseModel):
    id: str
    user_id: str
    action: str
    entity_type: str
    entity_id: str
    changes: Optional[List[dict]] = None
    metadata: dict = {}
    created_at: Optional[str] = None


def activity_to_out(entry: ActivityLog) -> ActivityOut:
    return ActivityOut(
        id=entry.id,
        user_id=entry.user_id,
        action=enum_value(entry.action),
        entity_type=enum_value(entry.entity_type),
        entity_id=entry.entity_id,
        changes=entry.changes,
        metadata=entry.extra_data or {},
        created_at=ts(entry.created_at),
    )


async def entity_activity(
    db: AsyncSession, entity_type: EntityType, entity_id: str, limit: int,
) -> List[ActivityOut]:
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
    )
    return [activity_to_out(e) for e in (await db.execute(stmt)).scalars().all()]


@router.get("/mine", response_model=List[ActivityOut])
async def my_activity(
    limit: int = Query(20, ge=1),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Caller's own actions, newest first"""
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.user_id == user.id)
        .order_by(ActivityLog.created_at.desc())
        .limit(min(limit, MINE_MAX_LIMIT))
    )
    return [activity_to_out(e) for e in (await db.execute(stmt)).scalars().all()]


@router.get("/dashboard", response_model=List[ActivityOut])
async def dashboard_activity(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Recent activity across every project the caller can see and their tasks"""
    project_ids = (await db.execute(
        select(Project.id).where(
            Project.status != ProjectStatus.ARCHIVED, visible_projects_clause(db, user),
        )
    )).scalars().all()
    if not project_ids:
        return []

    task_ids = (await db.execute(
        select(Task.id).where(Task.project_id.in_(project_ids))
    )).scalars().all()

    conditions = [and_(
        ActivityLog.entity_type == EntityType.PROJECT,
        ActivityLog.entity_id.in_(project_ids),
    )]
    if task_ids:
        conditions.append(and_(
            ActivityLog.entity_type == EntityType.TASK,
            ActivityLog.entity_id.in_(task_ids),
        ))

    stmt = (
        select(ActivityLog)
        .where(or_(*conditions))
        .order_by(ActivityLog.created_at.desc())
        .limit(DASHBOARD_LIMIT)
    )
    return [activity_to_out(e) for e in (await db.execute(stmt)).scalars().all()]
