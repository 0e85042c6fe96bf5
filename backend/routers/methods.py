# routers/methods.py — Named-method call surface
#
# POST /api/v1/methods/{name} with {"args": [...], "kwargs": {...}} dispatches
# to the same services and access checks as the REST endpoints and answers
# {"result": ..., "warnings": [...]}. Arguments are bound against the handler
# signature; anything that does not bind or fails type checks is a
# validation-error.
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

import reporting
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFoundError, ValidationFailedError
from project_service import ProjectService, ProjectCreate, ProjectUpdate
from task_service import TaskService, TaskCreate, TaskUpdate
from routers.aggregations import (
    check_project_statistics, check_team_performance, check_activity_timeline,
)

logger = logging.getLogger("taskhub.methods")

router = APIRouter(prefix="/api/v1/methods", tags=["Methods"])


class MethodCall(BaseModel):
    args: List[Any] = Field(default_factory=list)
    kwargs: Dict[str, Any] = Field(default_factory=dict)


class MethodResult(BaseModel):
    result: Any = None
    warnings: List[str] = []


class TimelineOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    user_id: Optional[str] = Field(None, min_length=1)
    entity_id: Optional[str] = Field(None, min_length=1)
    days: int = Field(30, ge=1, le=reporting.TIMELINE_MAX_DAYS)


@dataclass
class CallContext:
    db: AsyncSession
    user: CurrentUser
    warnings: List[str] = field(default_factory=list)


METHODS: Dict[str, Callable] = {}


def method(name: str):
    """Register a handler under a public method name"""
    def decorator(fn):
        METHODS[name] = fn
        return fn
    return decorator


# ============================================================
# ARGUMENT CHECKS
# ============================================================

def _str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationFailedError(f"{name} must be a non-empty string")
    return value


def _optional_str(value: Any, name: str) -> Optional[str]:
    return None if value is None else _str(value, name)


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailedError(f"{name} must be a number")
    return value


def _bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationFailedError(f"{name} must be a boolean")
    return value


def _model(schema, payload: Any, name: str):
    if not isinstance(payload, dict):
        raise ValidationFailedError(f"{name} must be an object")
    try:
        return schema(**payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationFailedError(f"Invalid {name}: {problems}")


# ============================================================
# PROJECTS
# ============================================================

@method("projects.insert")
async def projects_insert(ctx: CallContext, project: dict):
    return await ProjectService.insert(ctx.db, ctx.user, _model(ProjectCreate, project, "project"))


@method("projects.update")
async def projects_update(ctx: CallContext, project_id: str, updates: dict):
    await ProjectService.update(
        ctx.db, ctx.user, _str(project_id, "project_id"), _model(ProjectUpdate, updates, "updates"),
    )


@method("projects.remove")
async def projects_remove(ctx: CallContext, project_id: str, hard: bool = False):
    await ProjectService.remove(ctx.db, ctx.user, _str(project_id, "project_id"), hard=_bool(hard, "hard"))


@method("projects.addTeamMember")
async def projects_add_team_member(ctx: CallContext, project_id: str, user_id: str):
    return await ProjectService.add_team_member(
        ctx.db, ctx.user, _str(project_id, "project_id"), _str(user_id, "user_id"),
    )


@method("projects.removeTeamMember")
async def projects_remove_team_member(ctx: CallContext, project_id: str, user_id: str):
    return await ProjectService.remove_team_member(
        ctx.db, ctx.user, _str(project_id, "project_id"), _str(user_id, "user_id"),
    )


@method("projects.updateTaskCounters")
async def projects_update_task_counters(ctx: CallContext, project_id: str):
    return await ProjectService.update_task_counters(ctx.db, ctx.user, _str(project_id, "project_id"))


# ============================================================
# TASKS
# ============================================================

@method("tasks.insert")
async def tasks_insert(ctx: CallContext, task: dict):
    task_id, warnings = await TaskService.insert(ctx.db, ctx.user, _model(TaskCreate, task, "task"))
    ctx.warnings.extend(warnings)
    return task_id


@method("tasks.update")
async def tasks_update(ctx: CallContext, task_id: str, updates: dict):
    _, warnings = await TaskService.update(
        ctx.db, ctx.user, _str(task_id, "task_id"), _model(TaskUpdate, updates, "updates"),
    )
    ctx.warnings.extend(warnings)


@method("tasks.remove")
async def tasks_remove(ctx: CallContext, task_id: str):
    await TaskService.remove(ctx.db, ctx.user, _str(task_id, "task_id"))


@method("tasks.assign")
async def tasks_assign(ctx: CallContext, task_id: str, user_id: Optional[str] = None):
    await TaskService.assign(
        ctx.db, ctx.user, _str(task_id, "task_id"), _optional_str(user_id, "user_id"),
    )


@method("tasks.logTime")
async def tasks_log_time(ctx: CallContext, task_id: str, hours: float):
    task = await TaskService.log_time(ctx.db, ctx.user, _str(task_id, "task_id"), _number(hours, "hours"))
    return task.actual_hours


# ============================================================
# AGGREGATIONS
# ============================================================

@method("aggregations.getUserStatistics")
async def aggregations_user_statistics(ctx: CallContext):
    return await reporting.get_user_statistics(ctx.db, ctx.user.id)


@method("aggregations.getProjectStatistics")
async def aggregations_project_statistics(ctx: CallContext, project_id: str):
    await check_project_statistics(ctx.db, ctx.user, _str(project_id, "project_id"))
    return await reporting.get_project_statistics(ctx.db, project_id)


@method("aggregations.getTeamPerformance")
async def aggregations_team_performance(ctx: CallContext, project_id: Optional[str] = None):
    check_team_performance(ctx.user)
    return await reporting.get_team_performance(ctx.db, _optional_str(project_id, "project_id"))


@method("aggregations.getActivityTimeline")
async def aggregations_activity_timeline(
    ctx: CallContext,
    options: Optional[dict] = None,
    user_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    days: Optional[int] = None,
):
    # Accepts {"user_id", "entity_id", "days"} as one object, keyword arguments, or both
    if options is not None and not isinstance(options, dict):
        raise ValidationFailedError("options must be an object")
    payload = dict(options or {})
    explicit = {"user_id": user_id, "entity_id": entity_id, "days": days}
    payload.update({k: v for k, v in explicit.items() if v is not None})
    opts = _model(TimelineOptions, payload, "options")

    check_activity_timeline(ctx.user, opts.user_id)
    return await reporting.get_activity_timeline(
        ctx.db, user_id=opts.user_id, entity_id=opts.entity_id, days=opts.days,
    )


@method("aggregations.getPriorityDistribution")
async def aggregations_priority_distribution(ctx: CallContext):
    return await reporting.get_priority_distribution(ctx.db)


# ============================================================
# DISPATCH
# ============================================================

@router.get("")
async def list_methods(user: CurrentUser = Depends(get_current_user)):
    return {"methods": sorted(METHODS)}


@router.post("/{name}", response_model=MethodResult)
async def call_method(
    name: str,
    call: Optional[MethodCall] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    handler = METHODS.get(name)
    if handler is None:
        raise NotFoundError(f"Method '{name}' not found")

    call = call or MethodCall()
    ctx = CallContext(db=db, user=user)
    try:
        bound = inspect.signature(handler).bind(ctx, *call.args, **call.kwargs)
    except TypeError as e:
        raise ValidationFailedError(f"Invalid arguments for {name}: {e}")

    result = await handler(*bound.args, **bound.kwargs)
    for warning in ctx.warnings:
        logger.warning(f"{name} by {user.username}: {warning}")
    return MethodResult(result=result, warnings=ctx.warnings)
