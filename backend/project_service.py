# project_service.py — Project mutations
# - Create (managers and admins), update, archive / hard delete
# - Team membership management
# - Counter self-heal
# Every write stages its activity entry and commits once.
import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, func, cast, or_, true, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from activity import log_activity, diff_changes, change
from counters import recompute_project_counters
from database import conflict_guard
from errors import NotAuthorizedError, NotFoundError, ValidationFailedError
from models import (
    Project, Task, User, ProjectStatus, Priority, ActivityAction, EntityType,
)
from permissions import resolve_project_capability, can_create_project

logger = logging.getLogger("taskhub.projects")

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100


# ============================================================
# SCHEMAS
# ============================================================

class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    team_member_ids: List[str] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.ACTIVE
    tags: List[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    tags: Optional[List[str]] = None
    team_member_ids: Optional[List[str]] = None
    priority: Optional[Priority] = None


# ============================================================
# HELPERS
# ============================================================

def _validate_name(name: str) -> None:
    if len(name.strip()) < NAME_MIN_LENGTH:
        raise ValidationFailedError(f"Project name must be at least {NAME_MIN_LENGTH} characters")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationFailedError(f"Project name must be less than {NAME_MAX_LENGTH} characters")


def _dedupe(ids: List[str]) -> List[str]:
    seen = []
    for i in ids:
        if i not in seen:
            seen.append(i)
    return seen


async def _check_users_exist(db: AsyncSession, user_ids: List[str]) -> None:
    if not user_ids:
        return
    found = (await db.execute(
        select(func.count(User.id)).where(User.id.in_(user_ids))
    )).scalar() or 0
    if found != len(user_ids):
        raise ValidationFailedError("One or more team members not found")


async def get_project_or_404(db: AsyncSession, project_id: str) -> Project:
    project = (await db.execute(
        select(Project).where(Project.id == project_id)
    )).scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")
    return project


def team_member_clause(db: AsyncSession, user_id: str):
    """SQL filter for projects whose team_member_ids includes user_id"""
    if db.get_bind().dialect.name == "postgresql":
        return cast(Project.team_member_ids, JSONB).contains([user_id])
    # JSON is stored as text elsewhere; match the quoted id as a whole element
    return cast(Project.team_member_ids, String).contains(json.dumps(user_id), autoescape=True)


def visible_projects_clause(db: AsyncSession, actor):
    """SQL counterpart of can_view_project"""
    if actor.is_admin:
        return true()
    return or_(Project.owner_id == actor.id, team_member_clause(db, actor.id))


async def _get_modifiable(db: AsyncSession, actor, project_id: str, verb: str = "modify") -> Project:
    project = await get_project_or_404(db, project_id)
    if not resolve_project_capability(actor, project).can_modify:
        raise NotAuthorizedError(f"You do not have permission to {verb} this project")
    return project


# ============================================================
# SERVICE
# ============================================================

class ProjectService:

    @staticmethod
    async def insert(db: AsyncSession, actor, data: ProjectCreate) -> str:
        """Create a project owned by the caller. Returns the new id."""
        if not can_create_project(actor):
            raise NotAuthorizedError("Only managers and admins can create projects")
        _validate_name(data.name)

        members = [m for m in _dedupe(data.team_member_ids) if m != actor.id]
        await _check_users_exist(db, members)

        project = Project(
            name=data.name,
            description=data.description,
            owner_id=actor.id,
            team_member_ids=members,
            status=data.status,
            tags=list(data.tags),
            priority=data.priority,
            total_tasks=0,
            completed_tasks=0,
        )
        db.add(project)
        await db.flush()

        log_activity(db, actor.id, ActivityAction.CREATE, EntityType.PROJECT, project.id)
        await db.commit()

        logger.info(f"Project created: {project.name} ({project.id[:8]}) by {actor.username}")
        return project.id

    @staticmethod
    async def update(db: AsyncSession, actor, project_id: str, data: ProjectUpdate) -> Project:
        fields = data.model_dump(exclude_unset=True)
        nulls = sorted(k for k, v in fields.items() if v is None)
        if nulls:
            raise ValidationFailedError(f"Fields cannot be null: {', '.join(nulls)}")

        project = await _get_modifiable(db, actor, project_id)

        if "name" in fields:
            _validate_name(fields["name"])
        if "team_member_ids" in fields:
            members = [m for m in _dedupe(fields["team_member_ids"]) if m != project.owner_id]
            await _check_users_exist(db, members)
            fields["team_member_ids"] = members

        changes = diff_changes(project, fields)
        async with conflict_guard(db):
            for key, value in fields.items():
                setattr(project, key, list(value) if isinstance(value, list) else value)
            log_activity(
                db, actor.id, ActivityAction.UPDATE, EntityType.PROJECT, project.id,
                changes=changes,
            )
            await db.commit()

        logger.info(f"Project updated: {project.id[:8]} fields={sorted(fields)} by {actor.username}")
        return project

    @staticmethod
    async def remove(db: AsyncSession, actor, project_id: str, hard: bool = False) -> None:
        """Archive a project, or delete it outright when it has no tasks"""
        project = await _get_modifiable(db, actor, project_id, verb="delete")

        async with conflict_guard(db):
            if hard:
                task_count = (await db.execute(
                    select(func.count(Task.id)).where(Task.project_id == project_id)
                )).scalar() or 0
                if task_count > 0:
                    raise ValidationFailedError(
                        f"Cannot delete project with {task_count} tasks. "
                        "Archive instead or delete tasks first."
                    )
                name = project.name
                await db.delete(project)
                log_activity(
                    db, actor.id, ActivityAction.DELETE, EntityType.PROJECT, project_id,
                    metadata={"project_name": name},
                )
            else:
                previous = project.status
                project.status = ProjectStatus.ARCHIVED
                log_activity(
                    db, actor.id, ActivityAction.UPDATE, EntityType.PROJECT, project_id,
                    changes=[change("status", previous, ProjectStatus.ARCHIVED)],
                )
            await db.commit()

        logger.info(f"Project {'deleted' if hard else 'archived'}: {project_id[:8]} by {actor.username}")

    @staticmethod
    async def add_team_member(db: AsyncSession, actor, project_id: str, user_id: str) -> bool:
        """Returns False when the user was already on the team"""
        project = await _get_modifiable(db, actor, project_id)

        user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")

        if project.is_on_team(user_id):
            return False

        async with conflict_guard(db):
            project.team_member_ids = list(project.team_member_ids or []) + [user_id]
            log_activity(
                db, actor.id, ActivityAction.UPDATE, EntityType.PROJECT, project_id,
                changes=[change("team_member_ids", None, user_id)],
                metadata={"action": "added team member", "user_id": user_id},
            )
            await db.commit()

        logger.info(f"Team member {user_id[:8]} added to project {project_id[:8]}")
        return True

    @staticmethod
    async def remove_team_member(db: AsyncSession, actor, project_id: str, user_id: str) -> bool:
        """Returns False when the user was not a member"""
        project = await _get_modifiable(db, actor, project_id)

        if project.owner_id == user_id:
            raise ValidationFailedError("Cannot remove project owner from team")
        if not project.is_team_member(user_id):
            return False

        async with conflict_guard(db):
            project.team_member_ids = [m for m in project.team_member_ids if m != user_id]
            log_activity(
                db, actor.id, ActivityAction.UPDATE, EntityType.PROJECT, project_id,
                changes=[change("team_member_ids", user_id, None)],
                metadata={"action": "removed team member", "user_id": user_id},
            )
            await db.commit()

        logger.info(f"Team member {user_id[:8]} removed from project {project_id[:8]}")
        return True

    @staticmethod
    async def update_task_counters(db: AsyncSession, actor, project_id: str) -> dict:
        """Recount tasks for a project whose counters may have drifted"""
        await _get_modifiable(db, actor, project_id)
        total, completed = await recompute_project_counters(db, project_id)
        await db.commit()
        return {"total_tasks": total, "completed_tasks": completed}
