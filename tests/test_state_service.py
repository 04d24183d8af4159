"""Tests for the state catalog service."""

import pytest
from sqlalchemy import select

from taskflow.exceptions import CatalogConflictError, InputError, NotFoundError
from taskflow.models import ProjectState, Task
from taskflow.services.state import StateService


async def test_states_are_listed_in_position_order(db, catalog):
    states = await StateService(db).list_states(catalog.project.id)

    assert [s.name for s in states] == ["To Do", "In Progress", "Done", "Cancelled"]
    assert [s.position for s in states] == [1, 2, 3, 4]


async def test_new_state_is_appended(db, catalog):
    state = await StateService(db).create_state(catalog.project.id, "  Blocked ")

    assert state.name == "Blocked"
    assert state.position == 5


async def test_duplicate_name_is_rejected_case_insensitively(db, catalog):
    with pytest.raises(CatalogConflictError):
        await StateService(db).create_state(catalog.project.id, "done")


async def test_blank_name_is_rejected(db, catalog):
    with pytest.raises(InputError):
        await StateService(db).create_state(catalog.project.id, "   ")


async def test_rename(db, catalog):
    state = await StateService(db).rename_state(catalog.done.id, "Shipped")

    assert state.name == "Shipped"


async def test_reorder_requires_every_state(db, catalog):
    service = StateService(db)

    with pytest.raises(InputError):
        await service.reorder_states(catalog.project.id, [catalog.done.id, catalog.todo.id])

    with pytest.raises(InputError):
        await service.reorder_states(
            catalog.project.id,
            [catalog.done.id, catalog.done.id, catalog.todo.id, catalog.in_progress.id],
        )


async def test_reorder_sets_positions(db, catalog):
    order = [catalog.cancelled.id, catalog.done.id, catalog.in_progress.id, catalog.todo.id]

    states = await StateService(db).reorder_states(catalog.project.id, order)

    assert [s.id for s in states] == order


async def test_state_used_by_workflow_cannot_be_deleted(db, catalog):
    with pytest.raises(CatalogConflictError, match="workflow step"):
        await StateService(db).delete_state(catalog.cancelled.id)


async def test_state_used_by_task_cannot_be_deleted(db, catalog):
    service = StateService(db)
    parked = await service.create_state(catalog.project.id, "Parked")
    db.add(
        Task(
            name="Parked task",
            project_id=catalog.project.id,
            owner_id=catalog.owner.id,
            state_id=parked.id,
        )
    )
    await db.flush()

    with pytest.raises(CatalogConflictError, match="task"):
        await service.delete_state(parked.id)


async def test_unused_state_is_deleted(db, catalog):
    service = StateService(db)
    parked = await service.create_state(catalog.project.id, "Parked")

    await service.delete_state(parked.id)

    result = await db.execute(select(ProjectState).where(ProjectState.id == parked.id))
    assert result.scalar_one_or_none() is None
    with pytest.raises(NotFoundError):
        await service.get_state(parked.id)
