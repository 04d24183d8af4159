"""API router package."""

from fastapi import APIRouter

from taskflow.api.v1 import fields, health, states, task_types, tasks, workflows

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(states.router, tags=["States"])
router.include_router(workflows.router, tags=["Workflows"])
router.include_router(task_types.router, tags=["Task Types"])
router.include_router(fields.router, tags=["Custom Fields"])
