# activity.py — Append-only activity log
#
# Entries are added to the caller's session and committed together with the
# write they describe. Nothing here updates an existing entry; the retention
# purge is the only path that removes them.
import os
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityLog, ActivityAction, EntityType, utcnow

logger = logging.getLogger("taskhub.activity")

ACTIVITY_LOG_RETENTION_DAYS = int(os.getenv("ACTIVITY_LOG_RETENTION_DAYS", "90"))


def _plain(value: Any) -> Any:
    """JSON-safe form of a column value"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def change(field: str, old_value: Any, new_value: Any) -> Dict[str, Any]:
    return {"field": field, "old_value": _plain(old_value), "new_value": _plain(new_value)}


def diff_changes(entity, new_values: Dict[str, Any], fields: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    """List {field, old_value, new_value} for every field whose value differs"""
    changes = []
    for name in fields if fields is not None else new_values.keys():
        if name not in new_values:
            continue
        old = _plain(getattr(entity, name))
        new = _plain(new_values[name])
        if old != new:
            changes.append({"field": name, "old_value": old, "new_value": new})
    return changes


def log_activity(
    db: AsyncSession,
    user_id: str,
    action: ActivityAction,
    entity_type: EntityType,
    entity_id: str,
    changes: Optional[List[Dict[str, Any]]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ActivityLog:
    """Stage an activity entry in the current transaction (no commit)"""
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes=changes or None,
        extra_data=metadata or {},
        created_at=utcnow(),
    )
    db.add(entry)
    return entry


async def purge_expired_activity_logs(
    db: AsyncSession,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
) -> int:
    """Delete entries older than the retention window. Returns rows removed."""
    days = ACTIVITY_LOG_RETENTION_DAYS if retention_days is None else retention_days
    cutoff = (now or utcnow()) - timedelta(days=days)
    result = await db.execute(
        delete(ActivityLog).where(ActivityLog.created_at < cutoff)
    )
    await db.commit()
    removed = result.rowcount or 0
    logger.info(f"Purged {removed} activity entries older than {cutoff.date().isoformat()}")
    return removed
