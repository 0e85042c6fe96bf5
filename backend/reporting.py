# reporting.py — One-shot statistics over tasks and activity
#
# Counts and sums are grouped in SQL; date arithmetic and day bucketing run in
# Python so the same code works on Postgres and SQLite. Every output dict has
# fixed keys (zero-filled) and every division by zero yields 0.
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    Task, User, ActivityLog, TaskStatus, Priority, ActivityAction, as_utc, utcnow,
)

logger = logging.getLogger("taskhub.reporting")

SECONDS_PER_DAY = 60 * 60 * 24
OPEN_STATUSES = (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW)
# Order of priorities in the distribution output
PRIORITY_ORDER = (Priority.HIGH, Priority.MEDIUM, Priority.LOW)
TIMELINE_MAX_DAYS = 365


def _key(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def _empty_status_counts() -> Dict[str, int]:
    return {s.value: 0 for s in TaskStatus}


def _empty_priority_counts() -> Dict[str, int]:
    return {p.value: 0 for p in Priority}


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0


def _days_between(start, end) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / SECONDS_PER_DAY


def _full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return f"{first_name or ''} {last_name or ''}"


# ============================================================
# USER STATISTICS
# ============================================================

async def get_user_statistics(db: AsyncSession, user_id: str) -> Dict[str, Any]:
    """Workload summary for the tasks assigned to a user"""
    by_status = _empty_status_counts()
    status_rows = await db.execute(
        select(Task.status, func.count(Task.id))
        .where(Task.assigned_to_id == user_id)
        .group_by(Task.status)
    )
    for status, count in status_rows.all():
        by_status[_key(status)] = count

    by_priority = _empty_priority_counts()
    priority_rows = await db.execute(
        select(Task.priority, func.count(Task.id))
        .where(Task.assigned_to_id == user_id)
        .group_by(Task.priority)
    )
    for priority, count in priority_rows.all():
        by_priority[_key(priority)] = count

    completed_rows = await db.execute(
        select(Task.created_at, Task.completed_at).where(
            Task.assigned_to_id == user_id,
            Task.status == TaskStatus.DONE,
            Task.completed_at.isnot(None),
        )
    )
    durations = [_days_between(c, d) for c, d in completed_rows.all() if c and d]
    avg_days = _ratio(sum(durations), len(durations))

    overdue = (await db.execute(
        select(func.count(Task.id)).where(
            Task.assigned_to_id == user_id,
            Task.status != TaskStatus.DONE,
            Task.due_date < utcnow(),
        )
    )).scalar() or 0

    return {
        "total_tasks_assigned": sum(by_status.values()),
        "tasks_by_status": by_status,
        "tasks_by_priority": by_priority,
        "average_completion_days": round(avg_days, 1),
        "overdue_count": overdue,
    }


# ============================================================
# PROJECT STATISTICS
# ============================================================

async def get_project_statistics(db: AsyncSession, project_id: str) -> Dict[str, Any]:
    """Dashboard numbers for one project"""
    by_status = _empty_status_counts()
    status_rows = await db.execute(
        select(Task.status, func.count(Task.id))
        .where(Task.project_id == project_id)
        .group_by(Task.status)
    )
    for status, count in status_rows.all():
        by_status[_key(status)] = count
    total = sum(by_status.values())

    # Inner join drops tasks whose assignee no longer exists
    assignee_rows = await db.execute(
        select(Task.assigned_to_id, User.first_name, User.last_name, func.count(Task.id))
        .join(User, User.id == Task.assigned_to_id)
        .where(Task.project_id == project_id, Task.assigned_to_id.isnot(None))
        .group_by(Task.assigned_to_id, User.first_name, User.last_name)
        .order_by(func.count(Task.id).desc())
    )
    by_assignee = [
        {"user_id": uid, "name": _full_name(first, last), "count": count}
        for uid, first, last, count in assignee_rows.all()
    ]

    hours = (await db.execute(
        select(
            func.sum(Task.estimated_hours),
            func.sum(Task.actual_hours),
            func.avg(Task.estimated_hours),
            func.avg(Task.actual_hours),
        ).where(Task.project_id == project_id)
    )).one()
    total_est, total_act, avg_est, avg_act = (float(h or 0) for h in hours)

    return {
        "total_tasks": total,
        "tasks_by_status": by_status,
        "tasks_by_assignee": by_assignee,
        "completion_rate": round(_ratio(by_status[TaskStatus.DONE.value], total), 2),
        "total_estimated_hours": total_est,
        "total_actual_hours": total_act,
        "average_estimated_hours": round(avg_est, 1),
        "average_actual_hours": round(avg_act, 1),
    }


# ============================================================
# TEAM PERFORMANCE
# ============================================================

async def get_team_performance(db: AsyncSession, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Per-assignee throughput, best performers first"""
    stmt = (
        select(
            Task.assigned_to_id, User.first_name, User.last_name,
            Task.status, Task.created_at, Task.completed_at, Task.due_date,
        )
        .join(User, User.id == Task.assigned_to_id)
        .where(Task.assigned_to_id.isnot(None))
    )
    if project_id:
        stmt = stmt.where(Task.project_id == project_id)
    rows = (await db.execute(stmt)).all()

    people: Dict[str, Dict[str, Any]] = {}
    for uid, first, last, status, created, completed, due in rows:
        entry = people.setdefault(uid, {
            "user_id": uid,
            "name": _full_name(first, last),
            "tasks_total": 0,
            "tasks_completed": 0,
            "tasks_in_progress": 0,
            "_finished": [],
        })
        entry["tasks_total"] += 1
        if status == TaskStatus.DONE:
            entry["tasks_completed"] += 1
            if created and completed:
                entry["_finished"].append((created, completed, due))
        elif status == TaskStatus.IN_PROGRESS:
            entry["tasks_in_progress"] += 1

    results = []
    for entry in people.values():
        finished = entry.pop("_finished")
        durations = [_days_between(c, d) for c, d, _ in finished]
        on_time = sum(1 for _, d, due in finished if due and as_utc(d) <= as_utc(due))
        entry["average_completion_days"] = round(_ratio(sum(durations), len(finished)), 1)
        entry["on_time_rate"] = round(_ratio(on_time, len(finished)), 2)
        results.append(entry)

    results.sort(key=lambda e: e["tasks_completed"], reverse=True)
    return results


# ============================================================
# ACTIVITY TIMELINE
# ============================================================

async def get_activity_timeline(
    db: AsyncSession,
    user_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    days: int = 30,
) -> List[Dict[str, Any]]:
    """Daily action counts over the last `days` days, newest day first"""
    now = utcnow()
    days = min(days, TIMELINE_MAX_DAYS)
    conditions = [ActivityLog.created_at >= now - timedelta(days=days), ActivityLog.created_at <= now]
    if user_id:
        conditions.append(ActivityLog.user_id == user_id)
    if entity_id:
        conditions.append(ActivityLog.entity_id == entity_id)

    rows = await db.execute(
        select(ActivityLog.created_at, ActivityLog.action).where(and_(*conditions))
    )

    buckets: Dict[str, Dict[str, int]] = defaultdict(lambda: {a.value: 0 for a in ActivityAction})
    for created_at, action in rows.all():
        day = as_utc(created_at).strftime("%Y-%m-%d")
        buckets[day][_key(action)] += 1

    return [{"date": day, "actions": buckets[day]} for day in sorted(buckets, reverse=True)]


# ============================================================
# PRIORITY DISTRIBUTION
# ============================================================

async def get_priority_distribution(db: AsyncSession) -> Dict[str, Dict[str, int]]:
    """Open tasks by priority and status; every cell present"""
    result = {p.value: {s.value: 0 for s in OPEN_STATUSES} for p in PRIORITY_ORDER}
    rows = await db.execute(
        select(Task.priority, Task.status, func.count(Task.id))
        .where(Task.status != TaskStatus.DONE)
        .group_by(Task.priority, Task.status)
    )
    for priority, status, count in rows.all():
        cell = result.get(_key(priority))
        if cell is not None and _key(status) in cell:
            cell[_key(status)] = count
    return result
