"""Tests for the workflow graph service."""

from uuid import uuid4

import pytest

from taskflow.engine.transitions import Transition
from taskflow.exceptions import CatalogConflictError, InputError, NotFoundError
from taskflow.models import Project
from taskflow.services.state import StateService
from taskflow.services.workflow import TransitionSpec, WorkflowService


async def test_steps_keep_their_order(db, catalog):
    workflow = await WorkflowService(db).get_workflow(catalog.workflow.id)

    assert workflow.state_ids == [
        catalog.todo.id,
        catalog.in_progress.id,
        catalog.done.id,
        catalog.cancelled.id,
    ]
    assert [s.step_order for s in workflow.steps] == [1, 2, 3, 4]


async def test_state_cannot_appear_twice(db, catalog):
    with pytest.raises(InputError):
        await WorkflowService(db).create_workflow(
            catalog.project.id, "Loop", [catalog.todo.id, catalog.todo.id]
        )


async def test_steps_must_belong_to_the_project(db, catalog):
    other = Project(name="Other", owner_id=catalog.owner.id)
    db.add(other)
    await db.flush()
    foreign = await StateService(db).create_state(other.id, "Elsewhere")

    with pytest.raises(InputError):
        await WorkflowService(db).create_workflow(
            catalog.project.id, "Mixed", [catalog.todo.id, foreign.id]
        )


async def test_duplicate_workflow_name(db, catalog):
    with pytest.raises(CatalogConflictError):
        await WorkflowService(db).create_workflow(catalog.project.id, "delivery")


async def test_adding_an_existing_edge_is_idempotent(db, catalog):
    service = WorkflowService(db)
    before = await service.get_workflow(catalog.workflow.id)
    existing_id = before.transitions[0].id

    again = await service.add_transition(
        catalog.workflow.id, catalog.in_progress.id, from_state_id=catalog.todo.id
    )

    assert again.id == existing_id
    workflow = await service.get_workflow(catalog.workflow.id)
    assert len(workflow.transitions) == 2


async def test_edge_endpoints_must_be_steps(db, catalog):
    parked = await StateService(db).create_state(catalog.project.id, "Parked")
    service = WorkflowService(db)

    with pytest.raises(InputError, match="target"):
        await service.add_transition(catalog.workflow.id, parked.id, from_state_id=catalog.todo.id)

    with pytest.raises(InputError, match="source"):
        await service.add_transition(catalog.workflow.id, catalog.todo.id, from_state_id=parked.id)


async def test_self_loop_is_rejected(db, catalog):
    with pytest.raises(InputError):
        await WorkflowService(db).add_transition(
            catalog.workflow.id, catalog.todo.id, from_state_id=catalog.todo.id
        )


async def test_wildcard_with_source_is_rejected(db, catalog):
    with pytest.raises(InputError):
        await WorkflowService(db).add_transition(
            catalog.workflow.id,
            catalog.cancelled.id,
            from_state_id=catalog.todo.id,
            any_state=True,
        )


async def test_removing_a_step_prunes_its_edges(db, catalog):
    service = WorkflowService(db)

    workflow = await service.set_steps(
        catalog.workflow.id, [catalog.todo.id, catalog.in_progress.id, catalog.cancelled.id]
    )

    assert workflow.state_ids == [catalog.todo.id, catalog.in_progress.id, catalog.cancelled.id]
    assert [(t.from_state_id, t.to_state_id) for t in workflow.transitions] == [
        (catalog.todo.id, catalog.in_progress.id)
    ]


async def test_set_transitions_replaces_and_collapses_duplicates(db, catalog):
    service = WorkflowService(db)
    wildcard = TransitionSpec(catalog.cancelled.id, any_state=True)
    entry = TransitionSpec(catalog.todo.id)

    workflow = await service.set_transitions(catalog.workflow.id, [wildcard, entry, wildcard])

    assert [(t.from_state_id, t.to_state_id, t.any_state) for t in workflow.transitions] == [
        (None, catalog.cancelled.id, True),
        (None, catalog.todo.id, False),
    ]


async def test_linear_seed_connects_consecutive_steps(db, catalog):
    service = WorkflowService(db)
    workflow = await service.create_workflow(
        catalog.project.id, "Review", [catalog.todo.id, catalog.in_progress.id, catalog.done.id]
    )

    workflow = await service.add_linear_transitions(workflow.id)
    assert [(t.from_state_id, t.to_state_id) for t in workflow.transitions] == [
        (catalog.todo.id, catalog.in_progress.id),
        (catalog.in_progress.id, catalog.done.id),
    ]

    workflow = await service.add_linear_transitions(workflow.id)
    assert len(workflow.transitions) == 2


async def test_workflow_used_by_task_type_cannot_be_deleted(db, catalog):
    with pytest.raises(CatalogConflictError):
        await WorkflowService(db).delete_workflow(catalog.workflow.id)


async def test_unused_workflow_is_deleted(db, catalog):
    service = WorkflowService(db)
    workflow = await service.create_workflow(catalog.project.id, "Scratch", [catalog.todo.id])

    await service.delete_workflow(workflow.id)

    with pytest.raises(NotFoundError):
        await service.get_workflow(workflow.id)


async def test_removing_unknown_transition(db, catalog):
    with pytest.raises(NotFoundError):
        await WorkflowService(db).remove_transition(catalog.workflow.id, uuid4())


async def test_graph_and_reachable_states(db, catalog):
    service = WorkflowService(db)
    await service.add_transition(catalog.workflow.id, catalog.cancelled.id, any_state=True)

    graph = await service.load_graph(catalog.workflow.id)
    assert graph.steps[0] == catalog.todo.id
    assert graph.transitions[-1] == Transition.wildcard(catalog.cancelled.id)

    reachable = await service.reachable_states(catalog.workflow.id, catalog.todo.id)
    assert [s.name for s in reachable] == ["In Progress", "Cancelled"]
