# tests/test_tasks.py — Task endpoint tests
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from models import ActivityLog, ActivityAction, Project, Task
from tests.conftest import get_auth_headers, create_project, create_task


async def _project(session_factory, project_id) -> Project:
    async with session_factory() as s:
        return (await s.execute(select(Project).where(Project.id == project_id))).scalar_one()


async def _actions(session_factory, entity_id):
    async with session_factory() as s:
        rows = await s.execute(
            select(ActivityLog).where(ActivityLog.entity_id == entity_id).order_by(ActivityLog.created_at)
        )
        return rows.scalars().all()


@pytest.mark.asyncio
async def test_assignee_completes_task(client: AsyncClient, session_factory, manager_user, member_user):
    """Owner creates a high-priority task for a teammate who marks it done"""
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(
        client, manager_user, project_id, assigned_to_id=member_user.id, priority="high",
    )

    resp = await client.patch(
        f"/api/v1/tasks/{task_id}", json={"status": "done"}, headers=get_auth_headers(member_user),
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "done"
    assert data["completed_at"] is not None

    project = await _project(session_factory, project_id)
    assert project.total_tasks == 1
    assert project.completed_tasks == 1

    entries = await _actions(session_factory, task_id)
    complete = [e for e in entries if e.action == ActivityAction.COMPLETE]
    assert len(complete) == 1
    assert complete[0].extra_data["previous_status"] == "todo"
    assert complete[0].user_id == member_user.id


@pytest.mark.asyncio
async def test_leaving_done_clears_completed_at(client: AsyncClient, session_factory, manager_user):
    project_id = await create_project(client, manager_user)
    task_id = await create_task(client, manager_user, project_id)
    headers = get_auth_headers(manager_user)

    await client.patch(f"/api/v1/tasks/{task_id}", json={"status": "done"}, headers=headers)
    resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"status": "review"}, headers=headers)
    assert resp.json()["completed_at"] is None
    assert (await _project(session_factory, project_id)).completed_tasks == 0


@pytest.mark.asyncio
async def test_assignee_cannot_change_priority(client: AsyncClient, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)
    headers = get_auth_headers(member_user)

    resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"priority": "low"}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "not-authorized"

    resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"status": "in_progress"}, headers=headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_assignee_outside_team_is_rejected(client: AsyncClient, manager_user, outsider):
    project_id = await create_project(client, manager_user)
    resp = await client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": "Audit logs", "assigned_to_id": outsider.id},
        headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation-error"


@pytest.mark.asyncio
async def test_unknown_assignee_is_not_found(client: AsyncClient, manager_user):
    project_id = await create_project(client, manager_user)
    resp = await client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": "Audit logs", "assigned_to_id": "ghost"},
        headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_insert_into_missing_project(client: AsyncClient, manager_user):
    resp = await client.post(
        "/api/v1/tasks",
        json={"project_id": "missing", "title": "Orphan"},
        headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "not-found"


@pytest.mark.asyncio
async def test_outsider_cannot_create_task(client: AsyncClient, manager_user, outsider):
    project_id = await create_project(client, manager_user)
    resp = await client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": "Sneaky"},
        headers=get_auth_headers(outsider),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("body,fragment", [
    ({"title": "ab"}, "at least 3"),
    ({"title": "x" * 201}, "less than 200"),
    ({"title": "Valid title", "description": "d" * 2001}, "less than 2000"),
    ({"title": "Valid title", "estimated_hours": 0}, "greater than 0"),
])
async def test_insert_validation(client: AsyncClient, manager_user, body, fragment):
    project_id = await create_project(client, manager_user)
    resp = await client.post(
        "/api/v1/tasks", json={"project_id": project_id, **body}, headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 400
    assert fragment in resp.json()["reason"]


@pytest.mark.asyncio
async def test_past_due_date_is_a_warning(client: AsyncClient, manager_user):
    project_id = await create_project(client, manager_user)
    yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    resp = await client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": "Late already", "due_date": yesterday},
        headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 201
    assert resp.json()["warnings"] == ["Due date is in the past"]


@pytest.mark.asyncio
async def test_insert_logs_create_and_assign(client: AsyncClient, session_factory, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)

    actions = [e.action for e in await _actions(session_factory, task_id)]
    assert ActivityAction.CREATE in actions
    assert ActivityAction.ASSIGN in actions
    assert (await _project(session_factory, project_id)).total_tasks == 1


@pytest.mark.asyncio
async def test_remove_only_by_creator_or_admin(
    client: AsyncClient, session_factory, manager_user, member_user, admin_user,
):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, member_user, project_id)

    # Project owner is not the creator
    resp = await client.delete(f"/api/v1/tasks/{task_id}", headers=get_auth_headers(manager_user))
    assert resp.status_code == 403

    resp = await client.delete(f"/api/v1/tasks/{task_id}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 200
    assert (await _project(session_factory, project_id)).total_tasks == 0

    entries = await _actions(session_factory, task_id)
    deleted = [e for e in entries if e.action == ActivityAction.DELETE][0]
    assert deleted.extra_data == {"task_title": "Write landing copy", "project_id": project_id}


@pytest.mark.asyncio
async def test_assign_and_unassign(client: AsyncClient, manager_user, member_user, member_two):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, manager_user, project_id)
    headers = get_auth_headers(manager_user)

    resp = await client.post(f"/api/v1/tasks/{task_id}/assign", json={"user_id": member_user.id}, headers=headers)
    assert resp.json()["assigned_to_id"] == member_user.id

    resp = await client.post(f"/api/v1/tasks/{task_id}/assign", json={"user_id": member_two.id}, headers=headers)
    assert resp.status_code == 400

    resp = await client.post(f"/api/v1/tasks/{task_id}/assign", json={"user_id": None}, headers=headers)
    assert resp.json()["assigned_to_id"] is None


@pytest.mark.asyncio
async def test_update_with_empty_assignee_unassigns(client: AsyncClient, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)
    headers = get_auth_headers(manager_user)

    resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"assigned_to_id": ""}, headers=headers)
    assert resp.status_code == 200
    task = (await client.get(f"/api/v1/tasks/{task_id}", headers=headers)).json()
    assert task["assigned_to_id"] is None

    resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"assigned_to_id": "ghost"}, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_assignee_cannot_reassign(client: AsyncClient, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    task_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)
    resp = await client.post(
        f"/api/v1/tasks/{task_id}/assign", json={"user_id": manager_user.id},
        headers=get_auth_headers(member_user),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_log_time_accumulates(client: AsyncClient, manager_user, member_user, member_two):
    project_id = await create_project(client, manager_user, members=[member_user, member_two])
    task_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)
    headers = get_auth_headers(member_user)

    resp = await client.post(f"/api/v1/tasks/{task_id}/time", json={"hours": 1.5}, headers=headers)
    assert resp.json()["actual_hours"] == 1.5
    resp = await client.post(f"/api/v1/tasks/{task_id}/time", json={"hours": 2}, headers=headers)
    assert resp.json()["actual_hours"] == 3.5

    resp = await client.post(f"/api/v1/tasks/{task_id}/time", json={"hours": 0}, headers=headers)
    assert resp.status_code == 400

    resp = await client.post(
        f"/api/v1/tasks/{task_id}/time", json={"hours": 1}, headers=get_auth_headers(member_two),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_my_task_views(client: AsyncClient, manager_user, member_user):
    project_id = await create_project(client, manager_user, members=[member_user])
    soon = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
    late = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    open_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id, due_date=soon)
    overdue_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id, due_date=late)
    done_id = await create_task(client, manager_user, project_id, assigned_to_id=member_user.id)
    headers = get_auth_headers(member_user)
    await client.patch(f"/api/v1/tasks/{done_id}", json={"status": "done"}, headers=headers)

    resp = await client.get("/api/v1/tasks/mine", headers=headers)
    assert [t["id"] for t in resp.json()] == [overdue_id, open_id]

    resp = await client.get("/api/v1/tasks/mine?include_done=true", headers=headers)
    assert done_id in {t["id"] for t in resp.json()}

    resp = await client.get("/api/v1/tasks/overdue", headers=headers)
    assert [t["id"] for t in resp.json()] == [overdue_id]

    resp = await client.get("/api/v1/tasks/created", headers=get_auth_headers(manager_user))
    assert len(resp.json()) == 3


@pytest.mark.asyncio
async def test_update_null_title_is_rejected(client: AsyncClient, manager_user):
    project_id = await create_project(client, manager_user)
    task_id = await create_task(client, manager_user, project_id)
    resp = await client.patch(
        f"/api/v1/tasks/{task_id}", json={"title": None}, headers=get_auth_headers(manager_user),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_activity_has_diff(client: AsyncClient, session_factory, manager_user):
    project_id = await create_project(client, manager_user)
    task_id = await create_task(client, manager_user, project_id)
    await client.patch(
        f"/api/v1/tasks/{task_id}", json={"priority": "high", "tags": ["seo"]},
        headers=get_auth_headers(manager_user),
    )
    update = [e for e in await _actions(session_factory, task_id) if e.action == ActivityAction.UPDATE][0]
    assert {"field": "priority", "old_value": "medium", "new_value": "high"} in update.changes


@pytest.mark.asyncio
async def test_completed_at_tracks_done_status(client: AsyncClient, session_factory, manager_user):
    project_id = await create_project(client, manager_user)
    headers = get_auth_headers(manager_user)
    ids = [await create_task(client, manager_user, project_id, title=f"Task {i}") for i in range(4)]
    for task_id, status in zip(ids, ["todo", "in_progress", "review", "done"]):
        await client.patch(f"/api/v1/tasks/{task_id}", json={"status": status}, headers=headers)

    async with session_factory() as s:
        tasks = (await s.execute(select(Task).where(Task.project_id == project_id))).scalars().all()
    for t in tasks:
        assert (t.completed_at is not None) == (t.status.value == "done")
