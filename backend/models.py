# models.py — Database models for TaskHub
# - String UUID primary keys
# - 3-tier role system (admin, manager, member)
# - Denormalized task counters on projects (recomputed, never incremented)
# - Optimistic concurrency (version columns) on projects and tasks
# - Append-only activity log with time-bounded retention

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Integer, Float,
    Enum as SQLEnum, ForeignKey, Text, Index, TypeDecorator,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def as_utc(value):
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime(timezone=True) that always hands back aware UTC values.

    SQLite drops the offset on the way in, Postgres keeps it; either way the
    ORM sees the same kind of datetime.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class ProjectStatus(str, PyEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Priority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, PyEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class ActivityAction(str, PyEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"
    ASSIGN = "assign"
    COMMENT = "comment"


class EntityType(str, PyEnum):
    PROJECT = "project"
    TASK = "task"


# Shared by projects.priority and tasks.priority (one Postgres enum type)
PriorityType = SQLEnum(Priority, values_callable=_enum_values, name="priority")


# ============================================================
# USERS
# ============================================================

class User(Base):
    """Reference to an account owned by the authentication subsystem"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, nullable=True)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    avatar = Column(String, nullable=True)
    role = Column(
        SQLEnum(UserRole, values_callable=_enum_values, name="userrole"),
        default=UserRole.MEMBER, nullable=False, index=True,
    )
    created_at = Column(UTCDateTime, default=utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username


# ============================================================
# PROJECTS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    team_member_ids = Column(JSON, nullable=False, default=list)
    status = Column(
        SQLEnum(ProjectStatus, values_callable=_enum_values, name="projectstatus"),
        default=ProjectStatus.ACTIVE, nullable=False,
    )
    tags = Column(JSON, nullable=False, default=list)

    # Denormalized metadata (see counters.recompute_project_counters)
    total_tasks = Column(Integer, nullable=False, default=0)
    completed_tasks = Column(Integer, nullable=False, default=0)
    priority = Column(PriorityType, default=Priority.MEDIUM, nullable=False)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", foreign_keys=[owner_id])

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_project_owner_status", "owner_id", "status"),
        Index("idx_project_status_created", "status", "created_at"),
    )

    def is_team_member(self, user_id: str) -> bool:
        return user_id in (self.team_member_ids or [])

    def is_on_team(self, user_id: str) -> bool:
        """Owner or team member"""
        return user_id == self.owner_id or self.is_team_member(user_id)


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    assigned_to_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(
        SQLEnum(TaskStatus, values_callable=_enum_values, name="taskstatus"),
        default=TaskStatus.TODO, nullable=False,
    )
    priority = Column(PriorityType, default=Priority.MEDIUM, nullable=False)
    due_date = Column(UTCDateTime, nullable=True)
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
    completed_at = Column(UTCDateTime, nullable=True)

    project = relationship("Project")
    creator = relationship("User", foreign_keys=[created_by])
    assignee = relationship("User", foreign_keys=[assigned_to_id])

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_task_project_status_due", "project_id", "status", "due_date"),
        Index("idx_task_assignee_status_due", "assigned_to_id", "status", "due_date"),
        Index("idx_task_due_status", "due_date", "status"),
        Index("idx_task_priority_status_created", "priority", "status", "created_at"),
        Index("idx_task_creator_created", "created_by", "created_at"),
    )


# ============================================================
# ACTIVITY LOGS (Append-only — never update; removed only by retention purge)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    action = Column(
        SQLEnum(ActivityAction, values_callable=_enum_values, name="activityaction"),
        nullable=False,
    )
    entity_type = Column(
        SQLEnum(EntityType, values_callable=_enum_values, name="entitytype"),
        nullable=False,
    )
    entity_id = Column(String, nullable=False)  # No FK: entities may be deleted
    changes = Column(JSON, nullable=True)  # [{"field", "old_value", "new_value"}]
    extra_data = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, default=utcnow, index=True)

    user = relationship("User")

    __table_args__ = (
        Index("idx_activity_user_created", "user_id", "created_at"),
        Index("idx_activity_entity_created", "entity_type", "entity_id", "created_at"),
        Index("idx_activity_action_created", "action", "created_at"),
    )
