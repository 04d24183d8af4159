"""Tests for the tasks API."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from taskflow.models import Task, User
from taskflow.services.task_update import TaskUpdateService
from taskflow.services.workflow import WorkflowService

from conftest import auth_headers, make_token

API = "/api/v1"


def task_url(task_id) -> str:
    return f"{API}/tasks/{task_id}"


async def reload_task(db, task_id) -> Task:
    result = await db.execute(
        select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# Authentication
# =============================================================================


async def test_missing_token(client, catalog):
    response = await client.put(task_url(catalog.task.id), json={"name": "x"})

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        make_token(uuid4(), secret="some-other-secret"),
    ],
)
async def test_invalid_token(client, catalog, token):
    response = await client.get(
        task_url(catalog.task.id), headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


async def test_refresh_token_is_not_accepted(client, catalog):
    token = make_token(catalog.owner.id, token_type="refresh")

    response = await client.get(
        task_url(catalog.task.id), headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401


async def test_unknown_user(client, catalog):
    response = await client.get(task_url(catalog.task.id), headers=auth_headers(uuid4()))

    assert response.status_code == 401
    assert response.json() == {"error": "User not found"}


async def test_disabled_user(client, db, catalog):
    owner = await db.get(User, catalog.owner.id)
    owner.is_active = False
    await db.commit()

    response = await client.get(task_url(catalog.task.id), headers=auth_headers(catalog.owner.id))

    assert response.status_code == 403
    assert response.json() == {"error": "User account is disabled"}


# =============================================================================
# PUT /tasks/{id}
# =============================================================================


async def test_update_returns_task_in_data(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login page", "state_id": str(catalog.in_progress.id)},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Fix login page"
    assert data["state_id"] == str(catalog.in_progress.id)
    assert [(v["field_name"], v["value"]) for v in data["field_values"]] == [("Severity", "Low")]


async def test_update_without_name(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"priority": "high"},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Name is required"}


async def test_update_of_someone_elses_task(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Mine now"},
        headers=auth_headers(catalog.member.id),
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Task not found"}


async def test_rejected_transition_lists_reachable_states(client, db, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login", "state_id": str(catalog.done.id)},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid state transition according to workflow rules",
        "reachable_states": [{"id": str(catalog.in_progress.id), "name": "In Progress"}],
    }
    assert (await reload_task(db, catalog.task.id)).state_id == catalog.todo.id


async def test_workflow_without_transitions(client, db, catalog):
    await WorkflowService(db).set_transitions(catalog.workflow.id, [])
    await db.commit()

    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login", "state_id": str(catalog.in_progress.id)},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "No state transitions are configured for this workflow",
        "reachable_states": [],
    }


async def test_field_errors_carry_details(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login", "field_values": []},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Required field 'Severity' must have a value"
    assert body["details"] == [
        {
            "field_id": str(catalog.severity.id),
            "field_name": "Severity",
            "code": "required",
            "error": "Required field 'Severity' must have a value",
        }
    ]


async def test_field_values_are_saved_with_the_update(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={
            "name": "Fix login",
            "field_values": [
                {"field_id": str(catalog.severity.id), "value": "High"},
                {"field_id": str(catalog.estimate.id), "value": 3},
            ],
        },
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 200
    values = {v["field_name"]: v["value"] for v in response.json()["data"]["field_values"]}
    assert values == {"Estimate": "3", "Severity": "High"}


async def test_malformed_body(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login", "state_id": "not-a-uuid"},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


async def test_null_priority_is_ignored(client, catalog):
    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login", "priority": None},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 200
    assert response.json()["data"]["priority"] == "medium"


async def test_unexpected_error_is_a_generic_500(client, catalog, monkeypatch):
    async def explode(self, task_id, user_id, patch):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(TaskUpdateService, "update_task", explode)

    response = await client.put(
        task_url(catalog.task.id),
        json={"name": "Fix login"},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


# =============================================================================
# Other task endpoints
# =============================================================================


async def test_create_list_and_delete(client, catalog):
    headers = auth_headers(catalog.owner.id)

    response = await client.post(
        f"{API}/tasks",
        json={
            "project_id": str(catalog.project.id),
            "name": "Tidy dependencies",
            "task_type_id": str(catalog.chore.id),
            "state_id": str(catalog.todo.id),
        },
        headers=headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["owner_id"] == str(catalog.owner.id)

    response = await client.get(
        f"{API}/tasks", params={"project_id": str(catalog.project.id)}, headers=headers
    )
    assert {t["name"] for t in response.json()} == {"Fix login", "Tidy dependencies"}

    response = await client.delete(task_url(created["id"]), headers=headers)
    assert response.status_code == 204

    response = await client.get(task_url(created["id"]), headers=headers)
    assert response.status_code == 404


async def test_create_without_name(client, catalog):
    response = await client.post(
        f"{API}/tasks",
        json={"project_id": str(catalog.project.id)},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Name is required"}


async def test_field_value_endpoints(client, catalog):
    headers = auth_headers(catalog.owner.id)
    url = f"{task_url(catalog.task.id)}/field-values"

    response = await client.get(url, headers=headers)
    assert response.status_code == 200
    assert response.json() == [
        {
            "field_id": str(catalog.severity.id),
            "field_name": "Severity",
            "input_kind": "select",
            "value": "Low",
            "display_value": "Low",
        }
    ]

    response = await client.put(
        url,
        json={
            "field_values": [
                {"field_id": str(catalog.severity.id), "value": "High"},
                {"field_id": str(catalog.estimate.id), "value": "many"},
            ]
        },
        headers=headers,
    )
    assert response.status_code == 400
    assert [d["code"] for d in response.json()["details"]] == ["invalid_value"]

    response = await client.put(
        url,
        json={
            "field_values": [
                {"field_id": str(catalog.severity.id), "value": "Medium"},
                {"field_id": str(catalog.estimate.id), "value": 1500},
            ]
        },
        headers=headers,
    )
    assert response.status_code == 200
    display = {v["field_name"]: v["display_value"] for v in response.json()}
    assert display == {"Estimate": "1,500", "Severity": "Medium"}


# =============================================================================
# Health and middleware
# =============================================================================


async def test_health(client):
    response = await client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_readiness(client):
    response = await client.get(f"{API}/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": "healthy"}


async def test_request_id_is_echoed_or_generated(client):
    response = await client.get(f"{API}/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"

    response = await client.get(f"{API}/health", headers={"X-Request-ID": "not a valid id"})
    assert response.headers["X-Request-ID"] != "not a valid id"
    assert "X-Process-Time" in response.headers
