"""Initial TaskHub schema (users, projects, tasks, activity logs)

Revision ID: a3c1d9e4f2b7
Revises:
Create Date: 2026-10-19T09:12:44.118204
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = 'a3c1d9e4f2b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

priority = sa.Enum('low', 'medium', 'high', name='priority')
# Same type reused by tasks; created once with projects
existing_priority = postgresql.ENUM('low', 'medium', 'high', name='priority', create_type=False)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('first_name', sa.String(), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(), nullable=False, server_default=''),
        sa.Column('avatar', sa.String(), nullable=True),
        sa.Column('role', sa.Enum('admin', 'manager', 'member', name='userrole'), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    # --- projects ---
    op.create_table(
        'projects',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('owner_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('team_member_ids', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('status', sa.Enum('active', 'completed', 'archived', name='projectstatus'), nullable=False, server_default='active'),
        sa.Column('tags', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('total_tasks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_tasks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('priority', priority, nullable=False, server_default='medium'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_owner_id', 'projects', ['owner_id'])
    op.create_index('idx_project_owner_status', 'projects', ['owner_id', 'status'])
    op.create_index('idx_project_status_created', 'projects', ['status', 'created_at'])

    # --- tasks ---
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('assigned_to_id', sa.String(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('status', sa.Enum('todo', 'in_progress', 'review', 'done', name='taskstatus'), nullable=False, server_default='todo'),
        sa.Column('priority', existing_priority, nullable=False, server_default='medium'),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_hours', sa.Float(), nullable=True),
        sa.Column('actual_hours', sa.Float(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('created_by', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_assigned_to_id', 'tasks', ['assigned_to_id'])
    op.create_index('idx_task_project_status_due', 'tasks', ['project_id', 'status', 'due_date'])
    op.create_index('idx_task_assignee_status_due', 'tasks', ['assigned_to_id', 'status', 'due_date'])
    op.create_index('idx_task_due_status', 'tasks', ['due_date', 'status'])
    op.create_index('idx_task_priority_status_created', 'tasks', ['priority', 'status', 'created_at'])
    op.create_index('idx_task_creator_created', 'tasks', ['created_by', 'created_at'])

    # --- activity_logs (append-only) ---
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action', sa.Enum('create', 'update', 'delete', 'complete', 'assign', 'comment', name='activityaction'), nullable=False),
        sa.Column('entity_type', sa.Enum('project', 'task', name='entitytype'), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('idx_activity_user_created', 'activity_logs', ['user_id', 'created_at'])
    op.create_index('idx_activity_entity_created', 'activity_logs', ['entity_type', 'entity_id', 'created_at'])
    op.create_index('idx_activity_action_created', 'activity_logs', ['action', 'created_at'])


def downgrade() -> None:
    op.drop_table('activity_logs')
    op.drop_table('tasks')
    op.drop_table('projects')
    op.drop_table('users')
    for enum_name in ('activityaction', 'entitytype', 'taskstatus', 'priority', 'projectstatus', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
