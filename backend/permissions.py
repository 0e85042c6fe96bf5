# permissions.py — Capability resolution for projects and tasks
#
# Pure functions over snapshots of the acting user and the target entity.
# Every mutation path (REST endpoint, RPC method) resolves a Capability here
# before touching the database, so insert/update/delete cannot drift apart.
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

from errors import NotAuthorizedError, ValidationFailedError
from models import Project, Task, UserRole

# Fields an assignee who is not otherwise privileged may change
ASSIGNEE_FIELDS: FrozenSet[str] = frozenset({"status", "actual_hours", "description"})

PROJECT_FIELDS: FrozenSet[str] = frozenset({
    "name", "description", "status", "tags", "team_member_ids", "priority",
})
TASK_FIELDS: FrozenSet[str] = frozenset({
    "title", "description", "status", "priority", "due_date",
    "estimated_hours", "actual_hours", "tags", "assigned_to_id",
})


def _is_admin(actor) -> bool:
    return actor.role == UserRole.ADMIN.value


@dataclass(frozen=True)
class Capability:
    can_view: bool = False
    can_modify: bool = False
    can_delete: bool = False
    can_log_time: bool = False
    # None when no field-level write access at all
    allowed_fields: Optional[FrozenSet[str]] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def can_write(self) -> bool:
        return bool(self.allowed_fields)

    def check_fields(self, requested: Iterable[str]) -> List[str]:
        """Return requested fields outside the allowed set, sorted."""
        allowed = self.allowed_fields or frozenset()
        return sorted(f for f in requested if f not in allowed)


def resolve_project_capability(actor, project: Project) -> Capability:
    if _is_admin(actor):
        return Capability(True, True, True, True, PROJECT_FIELDS, ["admin"])
    if project.owner_id == actor.id:
        return Capability(True, True, True, True, PROJECT_FIELDS, ["owner"])
    if project.is_team_member(actor.id):
        return Capability(can_view=True, reasons=["team member"])
    return Capability()


def resolve_task_capability(actor, task: Task, project: Optional[Project]) -> Capability:
    reasons = []
    if _is_admin(actor):
        reasons.append("admin")
    if task.created_by == actor.id:
        reasons.append("creator")
    if project is not None and project.owner_id == actor.id:
        reasons.append("project owner")

    can_view = bool(reasons) or (project is not None and project.is_team_member(actor.id))
    can_delete = _is_admin(actor) or task.created_by == actor.id

    if reasons:
        return Capability(
            can_view=True,
            can_modify=True,
            can_delete=can_delete,
            can_log_time=True,
            allowed_fields=TASK_FIELDS,
            reasons=reasons,
        )

    if task.assigned_to_id is not None and task.assigned_to_id == actor.id:
        return Capability(
            can_view=True,
            can_log_time=True,
            allowed_fields=ASSIGNEE_FIELDS,
            reasons=["assignee"],
        )

    return Capability(can_view=can_view)


def can_view_project(actor, project: Project) -> bool:
    return resolve_project_capability(actor, project).can_view


def can_create_project(actor) -> bool:
    return actor.role in (UserRole.ADMIN.value, UserRole.MANAGER.value)


def can_view_team_performance(actor) -> bool:
    return actor.role in (UserRole.ADMIN.value, UserRole.MANAGER.value)


def can_view_user_activity(actor, user_id: Optional[str]) -> bool:
    return user_id is None or user_id == actor.id or _is_admin(actor)


# ============================================================
# ENFORCEMENT HELPERS
# ============================================================

def ensure_task_fields(capability: Capability, requested: Iterable[str]) -> None:
    """Raise not-authorized unless every requested field may be written"""
    requested = list(requested)
    if not capability.can_write:
        raise NotAuthorizedError("You do not have permission to modify this task")
    rejected = capability.check_fields(requested)
    if rejected:
        if capability.can_modify:
            raise ValidationFailedError(f"Unknown task fields: {', '.join(rejected)}")
        raise NotAuthorizedError(
            f"Assignees can only update: {', '.join(sorted(capability.allowed_fields))}"
        )
