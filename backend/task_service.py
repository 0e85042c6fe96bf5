# task_service.py — Task mutations
#
# Each operation validates, checks the caller's capability, writes the task,
# recomputes the owning project's counters and stages activity entries, then
# commits once. Soft problems (a due date in the past) do not block the write;
# they come back as warnings and are logged.
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from activity import log_activity, diff_changes, change
from counters import recompute_project_counters
from database import conflict_guard
from errors import NotAuthorizedError, NotFoundError, ValidationFailedError
from models import (
    Project, Task, User, TaskStatus, Priority, ActivityAction, EntityType,
    as_utc, utcnow,
)
from permissions import (
    resolve_project_capability, resolve_task_capability, ensure_task_fields,
)

logger = logging.getLogger("taskhub.tasks")

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000

# Columns that may be cleared by sending null
NULLABLE_FIELDS = frozenset({"assigned_to_id", "due_date", "estimated_hours", "actual_hours"})

PAST_DUE_WARNING = "Due date is in the past"


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: str
    title: str
    description: str = ""
    assigned_to_id: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    tags: List[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    tags: Optional[List[str]] = None
    assigned_to_id: Optional[str] = None


# ============================================================
# VALIDATION
# ============================================================

def _validate_title(title: str) -> None:
    if len(title.strip()) < TITLE_MIN_LENGTH:
        raise ValidationFailedError(f"Task title must be at least {TITLE_MIN_LENGTH} characters")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationFailedError(f"Task title must be less than {TITLE_MAX_LENGTH} characters")


def _validate_description(description: str) -> None:
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationFailedError(
            f"Task description must be less than {DESCRIPTION_MAX_LENGTH} characters"
        )


def _due_date_warnings(task_ref: str, due_date: Optional[datetime]) -> List[str]:
    if due_date is not None and as_utc(due_date) < utcnow():
        logger.warning(f"Task {task_ref} has a due date in the past ({due_date.isoformat()})")
        return [PAST_DUE_WARNING]
    return []


async def _get_task_or_404(db: AsyncSession, task_id: str) -> Task:
    task = (await db.execute(select(Task).where(Task.id == task_id))).scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


async def _get_project(db: AsyncSession, project_id: str) -> Optional[Project]:
    return (await db.execute(
        select(Project).where(Project.id == project_id)
    )).scalar_one_or_none()


async def _validate_assignee(db: AsyncSession, project: Project, user_id: str) -> None:
    """Assignee must exist and be the project owner or a team member"""
    user = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise NotFoundError("Assigned user not found")
    if not project.is_on_team(user_id):
        raise ValidationFailedError("Can only assign tasks to project owner or team members")


def _apply_status(task: Task, new_status: TaskStatus) -> Optional[TaskStatus]:
    """Set status and keep completed_at consistent. Returns the previous status."""
    previous = TaskStatus(task.status)
    task.status = new_status
    if new_status == TaskStatus.DONE and previous != TaskStatus.DONE:
        task.completed_at = utcnow()
    elif new_status != TaskStatus.DONE:
        task.completed_at = None
    return previous


# ============================================================
# SERVICE
# ============================================================

class TaskService:

    @staticmethod
    async def insert(db: AsyncSession, actor, data: TaskCreate) -> Tuple[str, List[str]]:
        """Create a task in a visible project. Returns (task id, warnings)."""
        _validate_title(data.title)
        _validate_description(data.description)

        project = await _get_project(db, data.project_id)
        if not project:
            raise NotFoundError("Project not found")
        if not resolve_project_capability(actor, project).can_view:
            raise NotAuthorizedError("You do not have permission to create tasks in this project")

        if data.assigned_to_id:
            await _validate_assignee(db, project, data.assigned_to_id)
        if data.estimated_hours is not None and data.estimated_hours <= 0:
            raise ValidationFailedError("Estimated hours must be greater than 0")

        task = Task(
            project_id=project.id,
            title=data.title,
            description=data.description,
            assigned_to_id=data.assigned_to_id or None,
            status=TaskStatus.TODO,
            priority=data.priority,
            due_date=data.due_date,
            estimated_hours=data.estimated_hours,
            tags=list(data.tags),
            created_by=actor.id,
        )
        db.add(task)
        await db.flush()
        warnings = _due_date_warnings(task.id[:8], data.due_date)

        await recompute_project_counters(db, project.id)
        log_activity(db, actor.id, ActivityAction.CREATE, EntityType.TASK, task.id)
        if task.assigned_to_id:
            log_activity(
                db, actor.id, ActivityAction.ASSIGN, EntityType.TASK, task.id,
                changes=[change("assigned_to_id", None, task.assigned_to_id)],
            )
        await db.commit()

        logger.info(f"Task created: {task.title} ({task.id[:8]}) in project {project.id[:8]}")
        return task.id, warnings

    @staticmethod
    async def update(db: AsyncSession, actor, task_id: str, data: TaskUpdate) -> Tuple[Task, List[str]]:
        fields = data.model_dump(exclude_unset=True)
        task = await _get_task_or_404(db, task_id)
        project = await _get_project(db, task.project_id)

        capability = resolve_task_capability(actor, task, project)
        ensure_task_fields(capability, fields.keys())
        # An empty assignee means unassign
        if fields.get("assigned_to_id") == "":
            fields["assigned_to_id"] = None

        nulls = sorted(k for k, v in fields.items() if v is None and k not in NULLABLE_FIELDS)
        if nulls:
            raise ValidationFailedError(f"Fields cannot be null: {', '.join(nulls)}")
        if "title" in fields:
            _validate_title(fields["title"])
        if "description" in fields:
            _validate_description(fields["description"])
        for hours_field in ("estimated_hours", "actual_hours"):
            if fields.get(hours_field) is not None and fields[hours_field] < 0:
                raise ValidationFailedError(f"{hours_field} cannot be negative")

        new_assignee = fields.get("assigned_to_id")
        if new_assignee is not None:
            if not project:
                raise NotFoundError("Project not found")
            await _validate_assignee(db, project, new_assignee)

        warnings = []
        if "due_date" in fields:
            warnings = _due_date_warnings(task.id[:8], fields["due_date"])

        changes = diff_changes(task, fields)
        previous_assignee = task.assigned_to_id
        previous_status = TaskStatus(task.status)

        async with conflict_guard(db):
            for key, value in fields.items():
                if key == "status":
                    _apply_status(task, value)
                else:
                    setattr(task, key, list(value) if isinstance(value, list) else value)

            status_changed = "status" in fields and fields["status"] != previous_status
            if status_changed:
                await recompute_project_counters(db, task.project_id)
            if status_changed and fields["status"] == TaskStatus.DONE:
                log_activity(
                    db, actor.id, ActivityAction.COMPLETE, EntityType.TASK, task.id,
                    metadata={"previous_status": previous_status.value},
                )
            if "assigned_to_id" in fields and fields["assigned_to_id"] != previous_assignee:
                log_activity(
                    db, actor.id, ActivityAction.ASSIGN, EntityType.TASK, task.id,
                    changes=[change("assigned_to_id", previous_assignee, fields["assigned_to_id"])],
                    metadata={"previous_assignee": previous_assignee, "new_assignee": fields["assigned_to_id"]},
                )
            if fields:
                log_activity(
                    db, actor.id, ActivityAction.UPDATE, EntityType.TASK, task.id,
                    changes=changes,
                )
            await db.commit()

        logger.info(
            f"Task updated: {task.id[:8]} fields={sorted(fields)} by {actor.username} "
            f"({', '.join(capability.reasons)})"
        )
        return task, warnings

    @staticmethod
    async def remove(db: AsyncSession, actor, task_id: str) -> None:
        task = await _get_task_or_404(db, task_id)
        project = await _get_project(db, task.project_id)
        if not resolve_task_capability(actor, task, project).can_delete:
            raise NotAuthorizedError("Only task creator or admin can delete tasks")

        project_id = task.project_id
        title = task.title
        async with conflict_guard(db):
            await db.delete(task)
            await recompute_project_counters(db, project_id)
            log_activity(
                db, actor.id, ActivityAction.DELETE, EntityType.TASK, task_id,
                metadata={"task_title": title, "project_id": project_id},
            )
            await db.commit()

        logger.info(f"Task deleted: {title} ({task_id[:8]}) by {actor.username}")

    @staticmethod
    async def assign(db: AsyncSession, actor, task_id: str, user_id: Optional[str]) -> Task:
        """Assign a task to a team member, or unassign with None"""
        task = await _get_task_or_404(db, task_id)
        project = await _get_project(db, task.project_id)
        if not resolve_task_capability(actor, task, project).can_modify:
            raise NotAuthorizedError("You do not have permission to assign this task")

        if user_id:
            if not project:
                raise NotFoundError("Project not found")
            await _validate_assignee(db, project, user_id)

        previous = task.assigned_to_id
        async with conflict_guard(db):
            task.assigned_to_id = user_id or None
            log_activity(
                db, actor.id, ActivityAction.ASSIGN, EntityType.TASK, task.id,
                changes=[change("assigned_to_id", previous, task.assigned_to_id)],
                metadata={"previous_assignee": previous, "new_assignee": task.assigned_to_id},
            )
            await db.commit()

        logger.info(f"Task {task.id[:8]} assigned to {task.assigned_to_id or 'nobody'}")
        return task

    @staticmethod
    async def log_time(db: AsyncSession, actor, task_id: str, hours: float) -> Task:
        if hours is None or hours <= 0:
            raise ValidationFailedError("Hours must be greater than 0")

        task = await _get_task_or_404(db, task_id)
        project = await _get_project(db, task.project_id)
        if not resolve_task_capability(actor, task, project).can_log_time:
            raise NotAuthorizedError("You do not have permission to log time on this task")

        previous = task.actual_hours
        async with conflict_guard(db):
            task.actual_hours = (previous or 0) + hours
            log_activity(
                db, actor.id, ActivityAction.UPDATE, EntityType.TASK, task.id,
                changes=[change("actual_hours", previous, task.actual_hours)],
                metadata={"action": "logged time", "hours": hours},
            )
            await db.commit()

        logger.info(f"Logged {hours}h on task {task.id[:8]} by {actor.username}")
        return task
