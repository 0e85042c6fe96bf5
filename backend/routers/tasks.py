# routers/tasks.py — Task endpoints backed by TaskService
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotAuthorizedError, NotFoundError
from models import Project, Task, TaskStatus, EntityType, utcnow
from permissions import resolve_task_capability
from task_service import TaskService, TaskCreate, TaskUpdate
from routers.activity import ActivityOut, entity_activity
from routers.common import ts, enum_value

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])

MINE_LIMIT = 100
OVERDUE_LIMIT = 50
CREATED_LIMIT = 100
TASK_ACTIVITY_LIMIT = 100


# ============================================================
# SCHEMAS
# ============================================================

class TaskOut(BaseModel):
    id: str
    project_id: str
    title: str
    description: str = ""
    assigned_to_id: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[str] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    tags: list = []
    created_by: str
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None


class TaskCreated(BaseModel):
    id: str
    warnings: List[str] = []


class TaskWithWarnings(TaskOut):
    warnings: List[str] = []


class AssignRequest(BaseModel):
    user_id: Optional[str] = None


class LogTimeRequest(BaseModel):
    hours: float


def task_to_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        project_id=task.project_id,
        title=task.title,
        description=task.description or "",
        assigned_to_id=task.assigned_to_id,
        status=enum_value(task.status),
        priority=enum_value(task.priority),
        due_date=ts(task.due_date),
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        tags=task.tags or [],
        created_by=task.created_by,
        version=task.version,
        created_at=ts(task.created_at),
        updated_at=ts(task.updated_at),
        completed_at=ts(task.completed_at),
    )


async def _get_viewable_task(db: AsyncSession, user: CurrentUser, task_id: str) -> Task:
    task = (await db.execute(select(Task).where(Task.id == task_id))).scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    project = (await db.execute(
        select(Project).where(Project.id == task.project_id)
    )).scalar_one_or_none()
    if not resolve_task_capability(user, task, project).can_view:
        raise NotAuthorizedError("No access to this task")
    return task


# ============================================================
# READ VIEWS
# ============================================================

@router.get("/mine", response_model=List[TaskOut])
async def my_tasks(
    include_done: bool = False,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Tasks assigned to the caller, soonest due first"""
    stmt = select(Task).where(Task.assigned_to_id == user.id)
    if include_done:
        stmt = stmt.order_by(Task.created_at.desc()).limit(MINE_LIMIT * 2)
    else:
        stmt = (
            stmt.where(Task.status != TaskStatus.DONE)
            .order_by(Task.due_date.is_(None), Task.due_date.asc())
            .limit(MINE_LIMIT)
        )
    return [task_to_out(t) for t in (await db.execute(stmt)).scalars().all()]


@router.get("/overdue", response_model=List[TaskOut])
async def my_overdue_tasks(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    stmt = (
        select(Task)
        .where(
            Task.assigned_to_id == user.id,
            Task.status != TaskStatus.DONE,
            Task.due_date < utcnow(),
        )
        .order_by(Task.due_date.asc())
        .limit(OVERDUE_LIMIT)
    )
    return [task_to_out(t) for t in (await db.execute(stmt)).scalars().all()]


@router.get("/created", response_model=List[TaskOut])
async def tasks_created_by_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    stmt = (
        select(Task)
        .where(Task.created_by == user.id)
        .order_by(Task.created_at.desc())
        .limit(CREATED_LIMIT)
    )
    return [task_to_out(t) for t in (await db.execute(stmt)).scalars().all()]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return task_to_out(await _get_viewable_task(db, user, task_id))


@router.get("/{task_id}/activity", response_model=List[ActivityOut])
async def task_activity(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await _get_viewable_task(db, user, task_id)
    return await entity_activity(db, EntityType.TASK, task_id, TASK_ACTIVITY_LIMIT)


# ============================================================
# MUTATIONS
# ============================================================

@router.post("", response_model=TaskCreated, status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task_id, warnings = await TaskService.insert(db, user, data)
    return TaskCreated(id=task_id, warnings=warnings)


@router.patch("/{task_id}", response_model=TaskWithWarnings)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task, warnings = await TaskService.update(db, user, task_id, data)
    await db.refresh(task)
    return TaskWithWarnings(**task_to_out(task).model_dump(), warnings=warnings)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService.remove(db, user, task_id)
    return {"status": "deleted", "task_id": task_id}


@router.post("/{task_id}/assign", response_model=TaskOut)
async def assign_task(
    task_id: str,
    data: AssignRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService.assign(db, user, task_id, data.user_id)
    await db.refresh(task)
    return task_to_out(task)


@router.post("/{task_id}/time", response_model=TaskOut)
async def log_time(
    task_id: str,
    data: LogTimeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService.log_time(db, user, task_id, data.hours)
    await db.refresh(task)
    return task_to_out(task)
