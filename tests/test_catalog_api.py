"""Tests for the state, workflow, task type and custom field endpoints."""

from uuid import uuid4

import pytest

from conftest import auth_headers

API = "/api/v1"


# =============================================================================
# Access control
# =============================================================================


async def test_viewer_routes_hide_project_from_outsiders(client, catalog):
    response = await client.get(
        f"{API}/projects/{catalog.project.id}/states", headers=auth_headers(catalog.outsider.id)
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Project not found"}


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("post", "/projects/{project}/states", {"name": "Blocked"}),
        ("post", "/projects/{project}/workflows", {"name": "Review"}),
        ("post", "/workflows/{workflow}/transitions/linear", None),
        ("delete", "/task-types/{chore}", None),
        ("patch", "/fields/{estimate}", {"is_required": True}),
    ],
)
async def test_members_cannot_change_the_catalog(client, catalog, method, path, body):
    url = API + path.format(
        project=catalog.project.id,
        workflow=catalog.workflow.id,
        chore=catalog.chore.id,
        estimate=catalog.estimate.id,
    )
    kwargs = {"headers": auth_headers(catalog.member.id)}
    if body is not None:
        kwargs["json"] = body

    response = await getattr(client, method)(url, **kwargs)

    assert response.status_code == 403
    assert response.json() == {"error": "Requires admin role"}


async def test_members_can_read_the_catalog(client, catalog):
    headers = auth_headers(catalog.member.id)

    for path in ("states", "workflows", "task-types", "fields"):
        response = await client.get(f"{API}/projects/{catalog.project.id}/{path}", headers=headers)
        assert response.status_code == 200, path


# =============================================================================
# States
# =============================================================================


async def test_state_lifecycle(client, catalog):
    headers = auth_headers(catalog.owner.id)
    base = f"{API}/projects/{catalog.project.id}/states"

    response = await client.post(base, json={"name": "Blocked"}, headers=headers)
    assert response.status_code == 201
    blocked = response.json()
    assert blocked["position"] == 5

    response = await client.post(base, json={"name": "blocked"}, headers=headers)
    assert response.status_code == 409

    response = await client.patch(
        f"{base}/{blocked['id']}", json={"name": "On Hold"}, headers=headers
    )
    assert response.json()["name"] == "On Hold"

    response = await client.delete(f"{base}/{blocked['id']}", headers=headers)
    assert response.status_code == 204

    response = await client.get(base, headers=headers)
    assert [s["name"] for s in response.json()] == ["To Do", "In Progress", "Done", "Cancelled"]


async def test_state_in_use_cannot_be_deleted(client, catalog):
    response = await client.delete(
        f"{API}/projects/{catalog.project.id}/states/{catalog.todo.id}",
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 409


async def test_reorder_states(client, catalog):
    order = [catalog.done.id, catalog.todo.id, catalog.in_progress.id, catalog.cancelled.id]

    response = await client.put(
        f"{API}/projects/{catalog.project.id}/states/order",
        json={"state_ids": [str(i) for i in order]},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [str(i) for i in order]


# =============================================================================
# Workflows
# =============================================================================


async def test_workflow_graph_editing(client, catalog):
    headers = auth_headers(catalog.owner.id)

    response = await client.post(
        f"{API}/projects/{catalog.project.id}/workflows",
        json={
            "name": "Review",
            "state_ids": [str(catalog.todo.id), str(catalog.in_progress.id), str(catalog.done.id)],
        },
        headers=headers,
    )
    assert response.status_code == 201
    workflow = response.json()
    assert [s["state_name"] for s in workflow["steps"]] == ["To Do", "In Progress", "Done"]
    base = f"{API}/workflows/{workflow['id']}"

    response = await client.post(f"{base}/transitions/linear", headers=headers)
    assert len(response.json()["transitions"]) == 2

    response = await client.post(
        f"{base}/transitions",
        json={"to_state_id": str(catalog.done.id), "any_state": True},
        headers=headers,
    )
    assert response.status_code == 201
    wildcard = response.json()
    assert wildcard["from_state_id"] is None

    response = await client.get(
        f"{base}/reachable", params={"from_state_id": str(catalog.todo.id)}, headers=headers
    )
    assert [s["name"] for s in response.json()] == ["In Progress", "Done"]

    response = await client.delete(f"{base}/transitions/{wildcard['id']}", headers=headers)
    assert response.status_code == 204

    response = await client.delete(base, headers=headers)
    assert response.status_code == 204

    response = await client.get(base, headers=headers)
    assert response.status_code == 404


async def test_wildcard_with_source_is_a_bad_request(client, catalog):
    response = await client.post(
        f"{API}/workflows/{catalog.workflow.id}/transitions",
        json={
            "to_state_id": str(catalog.cancelled.id),
            "from_state_id": str(catalog.todo.id),
            "any_state": True,
        },
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


async def test_replace_transitions_and_steps(client, catalog):
    headers = auth_headers(catalog.owner.id)
    base = f"{API}/workflows/{catalog.workflow.id}"

    response = await client.put(
        f"{base}/transitions",
        json={
            "transitions": [
                {"to_state_id": str(catalog.done.id), "from_state_id": str(catalog.todo.id)},
                {"to_state_id": str(catalog.cancelled.id), "any_state": True},
            ]
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert len(response.json()["transitions"]) == 2

    response = await client.put(
        f"{base}/steps",
        json={"state_ids": [str(catalog.todo.id), str(catalog.cancelled.id)]},
        headers=headers,
    )
    assert response.status_code == 200
    assert [t["to_state_id"] for t in response.json()["transitions"]] == [
        str(catalog.cancelled.id)
    ]


async def test_workflow_in_use_cannot_be_deleted(client, catalog):
    response = await client.delete(
        f"{API}/workflows/{catalog.workflow.id}", headers=auth_headers(catalog.owner.id)
    )

    assert response.status_code == 409


# =============================================================================
# Task types and fields
# =============================================================================


async def test_task_type_lifecycle(client, catalog):
    headers = auth_headers(catalog.owner.id)

    response = await client.post(
        f"{API}/projects/{catalog.project.id}/task-types",
        json={"name": "Epic", "workflow_id": str(catalog.workflow.id)},
        headers=headers,
    )
    assert response.status_code == 201
    epic = response.json()

    response = await client.patch(
        f"{API}/task-types/{epic['id']}", json={"name": "Initiative"}, headers=headers
    )
    assert response.json()["name"] == "Initiative"

    response = await client.post(
        f"{API}/task-types/{epic['id']}/fields",
        json={"field_id": str(catalog.estimate.id)},
        headers=headers,
    )
    assert response.status_code == 201
    assert [f["name"] for f in response.json()] == ["Estimate"]

    response = await client.delete(
        f"{API}/task-types/{epic['id']}/fields/{catalog.estimate.id}", headers=headers
    )
    assert response.status_code == 204

    response = await client.delete(f"{API}/task-types/{epic['id']}", headers=headers)
    assert response.status_code == 204


async def test_task_type_with_unknown_workflow(client, catalog):
    response = await client.post(
        f"{API}/projects/{catalog.project.id}/task-types",
        json={"name": "Epic", "workflow_id": str(uuid4())},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Workflow not found in this project"}


async def test_replace_task_type_fields(client, catalog):
    response = await client.put(
        f"{API}/task-types/{catalog.bug.id}/fields",
        json={"field_ids": [str(catalog.estimate.id)]},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 200
    assert [f["name"] for f in response.json()] == ["Estimate"]


async def test_field_lifecycle(client, catalog):
    headers = auth_headers(catalog.owner.id)

    response = await client.post(
        f"{API}/projects/{catalog.project.id}/fields",
        json={"name": "Channel", "input_kind": "radio", "options": ["Email", "Phone"]},
        headers=headers,
    )
    assert response.status_code == 201
    channel = response.json()
    assert channel["options"] == ["Email", "Phone"]

    response = await client.patch(
        f"{API}/fields/{channel['id']}", json={"default_value": "Email"}, headers=headers
    )
    assert response.json()["default_value"] == "Email"

    response = await client.delete(f"{API}/fields/{channel['id']}", headers=headers)
    assert response.status_code == 204


async def test_field_kind_must_be_known(client, catalog):
    response = await client.post(
        f"{API}/projects/{catalog.project.id}/fields",
        json={"name": "Colour", "input_kind": "color"},
        headers=auth_headers(catalog.owner.id),
    )

    assert response.status_code == 400


async def test_field_with_values_needs_force(client, catalog):
    headers = auth_headers(catalog.owner.id)
    url = f"{API}/fields/{catalog.severity.id}"

    response = await client.delete(url, headers=headers)
    assert response.status_code == 409
    assert response.json() == {"error": "Field 'Severity' has values on 1 task(s)"}

    response = await client.delete(url, params={"force": "true"}, headers=headers)
    assert response.status_code == 204
