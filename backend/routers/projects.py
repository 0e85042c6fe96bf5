# routers/projects.py — Project endpoints backed by ProjectService
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotAuthorizedError, ValidationFailedError
from models import Project, Task, User, ProjectStatus, EntityType
from permissions import can_view_project
from project_service import (
    ProjectService, ProjectCreate, ProjectUpdate, get_project_or_404,
    team_member_clause, visible_projects_clause,
)
from routers.activity import ActivityOut, entity_activity
from routers.common import ts, enum_value
from routers.tasks import TaskOut, task_to_out
from routers.users import UserOut, user_to_out

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])

LIST_LIMIT = 50
ADMIN_LIST_LIMIT = 100
PROJECT_TASKS_LIMIT = 200
PROJECT_ACTIVITY_MAX_LIMIT = 200
SCOPES = ("owned", "member", "all")


# ============================================================
# SCHEMAS
# ============================================================

class ProjectOut(BaseModel):
    id: str
    name: str
    description: str = ""
    owner_id: str
    team_member_ids: List[str] = []
    status: str
    tags: list = []
    total_tasks: int = 0
    completed_tasks: int = 0
    priority: str
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProjectCreated(BaseModel):
    id: str


class MemberRequest(BaseModel):
    user_id: str


def project_to_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description or "",
        owner_id=project.owner_id,
        team_member_ids=project.team_member_ids or [],
        status=enum_value(project.status),
        tags=project.tags or [],
        total_tasks=project.total_tasks or 0,
        completed_tasks=project.completed_tasks or 0,
        priority=enum_value(project.priority),
        version=project.version,
        created_at=ts(project.created_at),
        updated_at=ts(project.updated_at),
    )


async def _get_viewable_project(db: AsyncSession, user: CurrentUser, project_id: str) -> Project:
    project = await get_project_or_404(db, project_id)
    if not can_view_project(user, project):
        raise NotAuthorizedError("No access to this project")
    return project


# ============================================================
# READ VIEWS
# ============================================================

@router.get("", response_model=List[ProjectOut])
async def list_projects(
    scope: str = "all",
    include_archived: bool = False,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Projects the caller owns or belongs to, newest first"""
    if scope not in SCOPES:
        raise ValidationFailedError(f"scope must be one of: {', '.join(SCOPES)}")

    stmt = select(Project).order_by(Project.created_at.desc())
    if not include_archived:
        stmt = stmt.where(Project.status != ProjectStatus.ARCHIVED)

    limit = LIST_LIMIT
    if scope == "owned":
        stmt = stmt.where(Project.owner_id == user.id)
    elif scope == "member":
        stmt = stmt.where(team_member_clause(db, user.id))
    else:
        stmt = stmt.where(visible_projects_clause(db, user))
        if user.is_admin:
            limit = ADMIN_LIST_LIMIT

    projects = (await db.execute(stmt.limit(limit))).scalars().all()
    return [project_to_out(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return project_to_out(await _get_viewable_project(db, user, project_id))


@router.get("/{project_id}/tasks", response_model=List[TaskOut])
async def list_project_tasks(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await _get_viewable_project(db, user, project_id)
    stmt = (
        select(Task)
        .where(Task.project_id == project_id)
        .order_by(Task.created_at.desc())
        .limit(PROJECT_TASKS_LIMIT)
    )
    return [task_to_out(t) for t in (await db.execute(stmt)).scalars().all()]


@router.get("/{project_id}/team", response_model=List[UserOut])
async def project_team(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Owner and team members"""
    project = await _get_viewable_project(db, user, project_id)
    team_ids = [project.owner_id] + list(project.team_member_ids or [])
    users = (await db.execute(
        select(User).where(User.id.in_(team_ids)).order_by(User.username)
    )).scalars().all()
    return [user_to_out(u) for u in users]


@router.get("/{project_id}/activity", response_model=List[ActivityOut])
async def project_activity(
    project_id: str,
    limit: int = Query(50, ge=1),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await _get_viewable_project(db, user, project_id)
    return await entity_activity(
        db, EntityType.PROJECT, project_id, min(limit, PROJECT_ACTIVITY_MAX_LIMIT)
    )


# ============================================================
# MUTATIONS
# ============================================================

@router.post("", response_model=ProjectCreated, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    project_id = await ProjectService.insert(db, user, data)
    return ProjectCreated(id=project_id)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    project = await ProjectService.update(db, user, project_id, data)
    await db.refresh(project)
    return project_to_out(project)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    hard: bool = False,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Archive a project (default) or delete it when it has no tasks"""
    await ProjectService.remove(db, user, project_id, hard=hard)
    return {"status": "deleted" if hard else "archived", "project_id": project_id}


@router.post("/{project_id}/members")
async def add_member(
    project_id: str,
    data: MemberRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    changed = await ProjectService.add_team_member(db, user, project_id, data.user_id)
    return {"project_id": project_id, "user_id": data.user_id, "changed": changed}


@router.delete("/{project_id}/members/{user_id}")
async def remove_member(
    project_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    changed = await ProjectService.remove_team_member(db, user, project_id, user_id)
    return {"project_id": project_id, "user_id": user_id, "changed": changed}


@router.post("/{project_id}/recount")
async def recount_tasks(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    counts = await ProjectService.update_task_counters(db, user, project_id)
    return {"project_id": project_id, **counts}
