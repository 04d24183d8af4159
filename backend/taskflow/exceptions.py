"""Taskflow exceptions.

Every error the services raise on purpose derives from TaskflowError and
carries the HTTP status it maps to, so the API layer can render it without
knowing which service raised it.
"""

from typing import Any


class TaskflowError(Exception):
    """Base exception for expected, caller-facing errors."""

    status_code: int = 500

    def __init__(self, message: str, code: str = "TASKFLOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Response body for this error."""
        return {"error": self.message}


class InputError(TaskflowError):
    """Malformed or incomplete request, detected before any data is loaded."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message=message, code="INPUT_ERROR")


class DomainValidationError(TaskflowError):
    """A request that is well-formed but violates workflow or field rules.

    Transition rejections carry the states that are legally reachable from
    the task's current state; field rejections carry one entry per failing
    field.
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: list[dict[str, Any]] | None = None,
        reachable_states: list[dict[str, Any]] | None = None,
    ):
        self.details = details or []
        self.reachable_states = reachable_states
        super().__init__(message=message, code=code)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.details:
            payload["details"] = self.details
        if self.reachable_states is not None:
            payload["reachable_states"] = self.reachable_states
        return payload


class NotFoundError(TaskflowError):
    """Entity missing, or not visible to the caller."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message=message, code="NOT_FOUND")


class PermissionDeniedError(TaskflowError):
    """Caller can see the project but lacks the role for this operation."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message=message, code="PERMISSION_DENIED")


class CatalogConflictError(TaskflowError):
    """A catalog change would break a reference or a uniqueness rule."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message=message, code="CATALOG_CONFLICT")


class FieldValuePersistenceError(TaskflowError):
    """Custom field values could not be written after the task row committed.

    Raised only in best-effort mode (``atomic_field_values=False``). The task
    update orchestrator catches it, logs it and reports success, so it never
    reaches a caller.
    """

    def __init__(self, task_id: Any, cause: Exception):
        self.task_id = task_id
        self.cause = cause
        super().__init__(
            message=f"Failed to persist field values for task {task_id}: {cause}",
            code="FIELD_VALUE_PERSISTENCE_FAILED",
        )
