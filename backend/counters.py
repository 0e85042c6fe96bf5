# counters.py — Denormalized project task counters
#
# Counters are always recomputed from the tasks table, never incremented, so a
# missed or duplicated call converges on the correct value the next time.
import logging
from typing import Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Project, Task, TaskStatus

logger = logging.getLogger("taskhub.counters")


async def count_project_tasks(db: AsyncSession, project_id: str) -> Tuple[int, int]:
    """Return (total, completed) task counts for a project"""
    stmt = select(
        func.count(Task.id),
        func.count(Task.id).filter(Task.status == TaskStatus.DONE),
    ).where(Task.project_id == project_id)
    total, completed = (await db.execute(stmt)).one()
    return total or 0, completed or 0


async def recompute_project_counters(db: AsyncSession, project_id: str) -> Tuple[int, int]:
    """Write fresh total/completed counts onto the project.

    Runs inside the caller's transaction: pending task changes are flushed
    first so the counts include them. Safe to call any number of times.
    """
    await db.flush()
    total, completed = await count_project_tasks(db, project_id)
    await db.execute(
        update(Project)
        .where(Project.id == project_id)
        .values(total_tasks=total, completed_tasks=completed)
        .execution_options(synchronize_session="fetch")
    )
    logger.debug(f"Counters for project {project_id[:8]}: {completed}/{total}")
    return total, completed
