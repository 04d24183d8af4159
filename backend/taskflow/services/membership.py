"""Project membership and access checks."""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import NotFoundError, PermissionDeniedError
from taskflow.models.project import Project, ProjectMember, ProjectRole

logger = structlog.get_logger()


def has_sufficient_role(user_role: str, required_role: str) -> bool:
    """Check if user_role meets or exceeds required_role."""
    return ProjectRole.rank_of(user_role) >= ProjectRole.rank_of(required_role)


async def get_member_role(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID,
) -> str | None:
    """Return the user's role in the project, or None if not a member."""
    result = await db.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def is_project_member(db: AsyncSession, project_id: UUID, user_id: UUID) -> bool:
    """Check whether a user belongs to the project (owner included)."""
    project = await db.get(Project, project_id)
    if project is None:
        return False
    if project.owner_id == user_id:
        return True
    return await get_member_role(db, project_id, user_id) is not None


async def check_project_access(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID,
    required_role: str | None = None,
) -> Project:
    """
    Resolve a project the user may act on.

    The project owner always has the owner role; everyone else needs a
    ProjectMember row. Users with no access get the same NotFoundError as
    for a missing project, so project ids do not leak.

    Raises:
        NotFoundError: Project missing or user not a member
        PermissionDeniedError: Member, but below ``required_role``
    """
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")

    if project.owner_id == user_id:
        role = ProjectRole.OWNER.value
    else:
        role = await get_member_role(db, project_id, user_id)

    if role is None:
        raise NotFoundError("Project not found")

    if required_role and not has_sufficient_role(role, required_role):
        logger.info(
            "project_access_denied",
            project_id=str(project_id),
            user_id=str(user_id),
            role=role,
            required_role=required_role,
        )
        raise PermissionDeniedError(f"Requires {required_role} role")

    return project
