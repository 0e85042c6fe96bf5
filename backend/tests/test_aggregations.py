# tests/test_aggregations.py — Reporting engine and endpoints
from datetime import timedelta

import pytest
from httpx import AsyncClient

import reporting
from models import (
    Project, Task, ActivityLog, TaskStatus, Priority, ActivityAction, EntityType, utcnow,
)
from tests.conftest import get_auth_headers, create_project, create_task


async def _seed_project(db, owner, members=()):
    project = Project(name="Analytics", owner_id=owner.id, team_member_ids=[m.id for m in members])
    db.add(project)
    await db.commit()
    return project


def _task(project, creator, assignee=None, status=TaskStatus.TODO, priority=Priority.MEDIUM, **extra):
    return Task(
        project_id=project.id,
        title="Seeded task",
        created_by=creator.id,
        assigned_to_id=assignee.id if assignee else None,
        status=status,
        priority=priority,
        **extra,
    )


@pytest.mark.asyncio
async def test_user_statistics_empty(db_session, member_user):
    stats = await reporting.get_user_statistics(db_session, member_user.id)
    assert stats == {
        "total_tasks_assigned": 0,
        "tasks_by_status": {"todo": 0, "in_progress": 0, "review": 0, "done": 0},
        "tasks_by_priority": {"low": 0, "medium": 0, "high": 0},
        "average_completion_days": 0.0,
        "overdue_count": 0,
    }


@pytest.mark.asyncio
async def test_user_statistics_counts_and_averages(db_session, manager_user, member_user):
    project = await _seed_project(db_session, manager_user, [member_user])
    now = utcnow()
    db_session.add_all([
        _task(project, manager_user, member_user, TaskStatus.DONE, Priority.HIGH,
              created_at=now - timedelta(days=4), completed_at=now - timedelta(days=2)),
        _task(project, manager_user, member_user, TaskStatus.DONE, Priority.LOW,
              created_at=now - timedelta(days=3), completed_at=now),
        _task(project, manager_user, member_user, TaskStatus.IN_PROGRESS,
              due_date=now - timedelta(days=1)),
        _task(project, manager_user, member_user, TaskStatus.DONE,
              due_date=now - timedelta(days=1), created_at=now, completed_at=now),
        _task(project, manager_user, manager_user),
    ])
    await db_session.commit()

    stats = await reporting.get_user_statistics(db_session, member_user.id)
    assert stats["total_tasks_assigned"] == 4
    assert stats["tasks_by_status"] == {"todo": 0, "in_progress": 1, "review": 0, "done": 3}
    assert stats["tasks_by_priority"] == {"low": 1, "medium": 2, "high": 1}
    # (2 + 3 + 0) / 3
    assert stats["average_completion_days"] == 1.7
    # Done tasks are never overdue
    assert stats["overdue_count"] == 1


@pytest.mark.asyncio
async def test_project_statistics_zero_tasks(db_session, manager_user):
    project = await _seed_project(db_session, manager_user)
    stats = await reporting.get_project_statistics(db_session, project.id)
    assert stats["total_tasks"] == 0
    assert stats["completion_rate"] == 0
    assert stats["tasks_by_assignee"] == []
    assert stats["average_estimated_hours"] == 0


@pytest.mark.asyncio
async def test_project_statistics(db_session, manager_user, member_user, member_two):
    project = await _seed_project(db_session, manager_user, [member_user, member_two])
    db_session.add_all([
        _task(project, manager_user, member_user, TaskStatus.DONE, estimated_hours=4, actual_hours=5),
        _task(project, manager_user, member_user, estimated_hours=2),
        _task(project, manager_user, member_two, TaskStatus.REVIEW, estimated_hours=3, actual_hours=1),
        _task(project, manager_user),
    ])
    await db_session.commit()

    stats = await reporting.get_project_statistics(db_session, project.id)
    assert stats["total_tasks"] == 4
    assert stats["tasks_by_status"] == {"todo": 2, "in_progress": 0, "review": 1, "done": 1}
    assert stats["completion_rate"] == 0.25
    assert stats["total_estimated_hours"] == 9
    assert stats["total_actual_hours"] == 6
    assert stats["average_estimated_hours"] == 3.0
    assert stats["average_actual_hours"] == 3.0
    assert stats["tasks_by_assignee"] == [
        {"user_id": member_user.id, "name": "Mel Member", "count": 2},
        {"user_id": member_two.id, "name": "Sam Second", "count": 1},
    ]


@pytest.mark.asyncio
async def test_completion_rate_rounds_to_two_places(db_session, manager_user):
    project = await _seed_project(db_session, manager_user)
    db_session.add_all([
        _task(project, manager_user, status=TaskStatus.DONE),
        _task(project, manager_user),
        _task(project, manager_user),
    ])
    await db_session.commit()
    stats = await reporting.get_project_statistics(db_session, project.id)
    assert stats["completion_rate"] == 0.33


@pytest.mark.asyncio
async def test_team_performance(db_session, manager_user, member_user, member_two):
    project = await _seed_project(db_session, manager_user, [member_user, member_two])
    now = utcnow()
    db_session.add_all([
        # On time: finished a day before due
        _task(project, manager_user, member_user, TaskStatus.DONE,
              created_at=now - timedelta(days=2), completed_at=now - timedelta(days=1),
              due_date=now),
        # Late
        _task(project, manager_user, member_user, TaskStatus.DONE,
              created_at=now - timedelta(days=4), completed_at=now - timedelta(days=1),
              due_date=now - timedelta(days=2)),
        _task(project, manager_user, member_user, TaskStatus.IN_PROGRESS),
        _task(project, manager_user, member_two, TaskStatus.IN_PROGRESS),
    ])
    await db_session.commit()

    team = await reporting.get_team_performance(db_session, project.id)
    assert [t["user_id"] for t in team] == [member_user.id, member_two.id]
    top = team[0]
    assert top["name"] == "Mel Member"
    assert top["tasks_total"] == 3
    assert top["tasks_completed"] == 2
    assert top["tasks_in_progress"] == 1
    assert top["average_completion_days"] == 2.0
    assert top["on_time_rate"] == 0.5
    assert team[1]["on_time_rate"] == 0
    assert team[1]["average_completion_days"] == 0


@pytest.mark.asyncio
async def test_activity_timeline_buckets_by_day(db_session, member_user):
    now = utcnow()
    db_session.add_all([
        ActivityLog(user_id=member_user.id, action=ActivityAction.CREATE, entity_type=EntityType.TASK,
                    entity_id="t1", created_at=now),
        ActivityLog(user_id=member_user.id, action=ActivityAction.COMPLETE, entity_type=EntityType.TASK,
                    entity_id="t1", created_at=now),
        ActivityLog(user_id=member_user.id, action=ActivityAction.UPDATE, entity_type=EntityType.TASK,
                    entity_id="t2", created_at=now - timedelta(days=2)),
        ActivityLog(user_id=member_user.id, action=ActivityAction.UPDATE, entity_type=EntityType.TASK,
                    entity_id="t2", created_at=now - timedelta(days=40)),
    ])
    await db_session.commit()

    timeline = await reporting.get_activity_timeline(db_session, user_id=member_user.id)
    assert [d["date"] for d in timeline] == [
        now.strftime("%Y-%m-%d"), (now - timedelta(days=2)).strftime("%Y-%m-%d"),
    ]
    assert timeline[0]["actions"] == {
        "create": 1, "update": 0, "delete": 0, "complete": 1, "assign": 0, "comment": 0,
    }

    only_t2 = await reporting.get_activity_timeline(db_session, entity_id="t2", days=7)
    assert len(only_t2) == 1
    assert only_t2[0]["actions"]["update"] == 1

    # Oversized windows are capped rather than overflowing
    capped = await reporting.get_activity_timeline(db_session, user_id=member_user.id, days=10**6)
    assert len(capped) == 3


@pytest.mark.asyncio
async def test_priority_distribution_always_full(db_session, manager_user):
    empty = await reporting.get_priority_distribution(db_session)
    assert empty == {
        "high": {"todo": 0, "in_progress": 0, "review": 0},
        "medium": {"todo": 0, "in_progress": 0, "review": 0},
        "low": {"todo": 0, "in_progress": 0, "review": 0},
    }

    project = await _seed_project(db_session, manager_user)
    db_session.add_all([
        _task(project, manager_user, priority=Priority.HIGH),
        _task(project, manager_user, priority=Priority.HIGH, status=TaskStatus.REVIEW),
        _task(project, manager_user, priority=Priority.HIGH, status=TaskStatus.DONE),
    ])
    await db_session.commit()
    dist = await reporting.get_priority_distribution(db_session)
    assert dist["high"] == {"todo": 1, "in_progress": 0, "review": 1}
    assert dist["low"] == {"todo": 0, "in_progress": 0, "review": 0}


# --- Endpoint access rules ---

@pytest.mark.asyncio
async def test_project_statistics_requires_visibility(client: AsyncClient, manager_user, member_user, outsider):
    project_id = await create_project(client, manager_user, members=[member_user])
    await create_task(client, manager_user, project_id)

    resp = await client.get(f"/api/v1/aggregations/projects/{project_id}", headers=get_auth_headers(member_user))
    assert resp.status_code == 200
    assert resp.json()["total_tasks"] == 1

    resp = await client.get(f"/api/v1/aggregations/projects/{project_id}", headers=get_auth_headers(outsider))
    assert resp.status_code == 403

    resp = await client.get("/api/v1/aggregations/projects/nope", headers=get_auth_headers(member_user))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_team_performance_requires_manager(client: AsyncClient, manager_user, member_user):
    resp = await client.get("/api/v1/aggregations/team-performance", headers=get_auth_headers(member_user))
    assert resp.status_code == 403
    resp = await client.get("/api/v1/aggregations/team-performance", headers=get_auth_headers(manager_user))
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_other_users_timeline_requires_admin(client: AsyncClient, admin_user, member_user, member_two):
    url = f"/api/v1/aggregations/activity-timeline?user_id={member_two.id}"
    assert (await client.get(url, headers=get_auth_headers(member_user))).status_code == 403
    assert (await client.get(url, headers=get_auth_headers(admin_user))).status_code == 200
    own = f"/api/v1/aggregations/activity-timeline?user_id={member_user.id}"
    assert (await client.get(own, headers=get_auth_headers(member_user))).status_code == 200


@pytest.mark.asyncio
async def test_user_statistics_endpoint(client: AsyncClient, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    await create_task(client, manager_user, project_id, assigned_to_id=member_user.id, priority="high")
    resp = await client.get("/api/v1/aggregations/user-statistics", headers=get_auth_headers(member_user))
    assert resp.status_code == 200
    assert resp.json()["tasks_by_priority"]["high"] == 1
