#!/usr/bin/env python3
"""
TaskHub — Sample Data Seeder
Populates an empty database with demo users, projects and tasks.
Used for development and demo environments.

Usage:
    python scripts/seed_data.py
    python scripts/seed_data.py --tokens

Mutations go through the service layer, so counters and activity
entries are produced exactly as they would be over the API.
"""

import argparse
import asyncio
from datetime import timedelta

from sqlalchemy import select, func

from auth import AuthService, CurrentUser
from database import get_db_context, init_db
from models import User, UserRole, TaskStatus, utcnow
from project_service import ProjectService, ProjectCreate
from task_service import TaskService, TaskCreate, TaskUpdate


# ── Configuration ───────────────────────────────────────────

USERS = [
    {"key": "admin", "username": "admin", "email": "admin@example.com",
     "first_name": "Alice", "last_name": "Admin", "role": UserRole.ADMIN},
    {"key": "manager1", "username": "manager1", "email": "bob.manager@example.com",
     "first_name": "Bob", "last_name": "Manager", "role": UserRole.MANAGER},
    {"key": "manager2", "username": "manager2", "email": "carol.lead@example.com",
     "first_name": "Carol", "last_name": "Lead", "role": UserRole.MANAGER},
    {"key": "member1", "username": "member1", "email": "david.dev@example.com",
     "first_name": "David", "last_name": "Developer", "role": UserRole.MEMBER},
    {"key": "member2", "username": "member2", "email": "emma.engineer@example.com",
     "first_name": "Emma", "last_name": "Engineer", "role": UserRole.MEMBER},
    {"key": "member3", "username": "member3", "email": "frank.frontend@example.com",
     "first_name": "Frank", "last_name": "Frontend", "role": UserRole.MEMBER},
]

PROJECTS = [
    {"key": "shop", "owner": "manager1", "members": ["member1", "member2", "member3"],
     "name": "E-Commerce Platform Redesign", "priority": "high",
     "description": "Modern storefront with real-time inventory and mobile support.",
     "tags": ["web", "frontend", "backend"]},
    {"key": "mobile", "owner": "manager1", "members": ["member1", "member3"],
     "name": "Mobile App Development", "priority": "medium",
     "description": "Native companion app for iOS and Android.",
     "tags": ["mobile", "ios", "android"]},
    {"key": "dashboard", "owner": "manager2", "members": ["member2"],
     "name": "Internal Analytics Dashboard", "priority": "medium",
     "description": "Real-time reporting for the operations team.",
     "tags": ["analytics", "data"]},
    {"key": "migration", "owner": "manager2", "members": ["member1", "member2"],
     "name": "Cloud Infrastructure Migration", "priority": "low",
     "description": "Move legacy services to managed cloud infrastructure.",
     "tags": ["devops", "infrastructure"]},
]

# (project, creator, assignee, title, priority, status, due in days, estimated hours)
TASKS = [
    ("shop", "manager1", "member1", "Design new homepage layout", "high", "done", -3, 16),
    ("shop", "manager1", "member2", "Implement product search API", "high", "in_progress", 5, 24),
    ("shop", "manager1", "member3", "Build checkout flow", "high", "review", 2, 20),
    ("shop", "manager1", None, "Write payment integration tests", "medium", "todo", 10, 8),
    ("mobile", "manager1", "member1", "Set up React Native project", "medium", "done", -10, 6),
    ("mobile", "manager1", "member3", "Implement push notifications", "medium", "in_progress", -1, 12),
    ("mobile", "manager1", "member3", "Offline sync prototype", "low", "todo", 21, 30),
    ("dashboard", "manager2", "member2", "Define KPI metrics", "high", "done", -7, 4),
    ("dashboard", "manager2", "member2", "Build chart components", "medium", "in_progress", 7, 18),
    ("dashboard", "manager2", None, "Export reports to CSV", "low", "todo", None, 5),
    ("migration", "manager2", "member1", "Inventory legacy services", "medium", "review", 3, 10),
    ("migration", "manager2", "member2", "Terraform base modules", "high", "todo", 14, 20),
]


def _actor(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id, username=user.username, display_name=user.display_name, role=user.role.value,
    )


async def seed() -> dict:
    await init_db()
    async with get_db_context() as db:
        existing = (await db.execute(select(func.count(User.id)))).scalar()
        if existing:
            print("⏭️  Users already exist, skipping...")
            return {}

        users = {}
        for entry in USERS:
            fields = {k: v for k, v in entry.items() if k != "key"}
            user = User(**fields)
            db.add(user)
            users[entry["key"]] = user
        await db.commit()

        projects = {}
        for entry in PROJECTS:
            owner = _actor(users[entry["owner"]])
            projects[entry["key"]] = await ProjectService.insert(db, owner, ProjectCreate(
                name=entry["name"],
                description=entry["description"],
                team_member_ids=[users[m].id for m in entry["members"]],
                tags=entry["tags"],
                priority=entry["priority"],
            ))

        now = utcnow()
        for project, creator, assignee, title, priority, status, due_in, estimate in TASKS:
            actor = _actor(users[creator])
            task_id, _ = await TaskService.insert(db, actor, TaskCreate(
                project_id=projects[project],
                title=title,
                assigned_to_id=users[assignee].id if assignee else None,
                priority=priority,
                due_date=now + timedelta(days=due_in) if due_in is not None else None,
                estimated_hours=estimate,
            ))
            if status != TaskStatus.TODO.value:
                await TaskService.update(db, actor, task_id, TaskUpdate(status=status))

    return users


def main():
    parser = argparse.ArgumentParser(description="TaskHub Sample Data Seeder")
    parser.add_argument("--tokens", action="store_true", help="Print a bearer token for each demo user")
    args = parser.parse_args()

    users = asyncio.run(seed())
    if not users:
        return

    print("✅ Sample data seeded")
    print(f"   Users: {len(USERS)}")
    print(f"   Projects: {len(PROJECTS)}")
    print(f"   Tasks: {len(TASKS)}")
    if args.tokens:
        for key, user in users.items():
            print(f"   {key}: {AuthService.token_for(user)}")


if __name__ == "__main__":
    main()
