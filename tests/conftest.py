"""Shared fixtures: a SQLite database per test, a seeded catalog and an API client."""

import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import UUID

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import taskflow.models  # noqa: F401
from taskflow.config import get_settings
from taskflow.db.base import Base
from taskflow.db.session import get_db_session
from taskflow.engine.field_values import ProposedValue
from taskflow.models import Project, ProjectMember, Task, User
from taskflow.services.custom_field import CustomFieldService
from taskflow.services.state import StateService
from taskflow.services.task_type import TaskTypeService
from taskflow.services.workflow import WorkflowService


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskflow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    from taskflow.main import app

    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_token(user_id: UUID, token_type: str = "access", secret: str | None = None) -> str:
    settings = get_settings()
    return jwt.encode(
        {
            "sub": str(user_id),
            "type": token_type,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        secret or settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
async def catalog(db):
    """A project with a delivery workflow, two task types and one task.

    Workflow "Delivery": To Do -> In Progress -> Done, with Cancelled as a
    step that nothing leads to yet. "Bug" has a required "Severity" select
    field and an optional "Estimate" number field; "Chore" has no fields.
    The task "Fix login" is a Bug in To Do with Severity = Low.
    """
    owner = User(email="owner@example.com", display_name="Olu Owner")
    member = User(email="member@example.com", display_name="Mika Member")
    outsider = User(email="outsider@example.com", display_name="Oren Outsider")
    db.add_all([owner, member, outsider])
    await db.flush()

    project = Project(name="Platform", owner_id=owner.id)
    db.add(project)
    await db.flush()
    db.add(ProjectMember(project_id=project.id, user_id=member.id, role="member"))
    await db.flush()

    states = StateService(db)
    todo = await states.create_state(project.id, "To Do")
    in_progress = await states.create_state(project.id, "In Progress")
    done = await states.create_state(project.id, "Done")
    cancelled = await states.create_state(project.id, "Cancelled")

    workflows = WorkflowService(db)
    workflow = await workflows.create_workflow(
        project.id, "Delivery", [todo.id, in_progress.id, done.id, cancelled.id]
    )
    await workflows.add_transition(workflow.id, in_progress.id, from_state_id=todo.id)
    await workflows.add_transition(workflow.id, done.id, from_state_id=in_progress.id)

    task_types = TaskTypeService(db)
    bug = await task_types.create_task_type(project.id, "Bug", workflow.id)
    chore = await task_types.create_task_type(project.id, "Chore", workflow.id)

    fields = CustomFieldService(db)
    severity = await fields.create_field(
        project.id, "Severity", "select", is_required=True, options=["Low", "Medium", "High"]
    )
    estimate = await fields.create_field(project.id, "Estimate", "number")
    await fields.set_task_type_fields(bug.id, [severity.id, estimate.id])

    task = Task(
        name="Fix login",
        project_id=project.id,
        owner_id=owner.id,
        task_type_id=bug.id,
        state_id=todo.id,
    )
    db.add(task)
    await db.flush()
    await fields.upsert_task_field_values(task.id, [ProposedValue(severity.id, "Low")])
    await db.commit()

    return SimpleNamespace(
        owner=owner,
        member=member,
        outsider=outsider,
        project=project,
        todo=todo,
        in_progress=in_progress,
        done=done,
        cancelled=cancelled,
        workflow=workflow,
        bug=bug,
        chore=chore,
        severity=severity,
        estimate=estimate,
        task=task,
    )
