"""
Typed errors raised by the workflow engine.

Every error carries a machine-readable ``code``, a human-readable message and
a ``details`` dict with enough context (entity, from/to status, missing
precondition) for callers to render a specific message.
"""
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for all engine errors."""

    code = "WORKFLOW_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error": self.code,
            "details": self.details,
        }


class ValidationFailed(WorkflowError):
    """Malformed input; the caller's fault."""

    code = "VALIDATION_FAILED"
    status_code = 422


class NotFound(WorkflowError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class InvalidTransition(WorkflowError):
    """A status change is not permitted from the current state."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, resource: str, from_status: Any, to_status: Any, resource_id: Any = None):
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            f"Invalid {resource} status transition from {from_value} to {to_value}",
            {
                "resource": resource,
                "id": resource_id,
                "from_status": from_value,
                "to_status": to_value,
            },
        )
        self.from_status = from_status
        self.to_status = to_status


class Forbidden(WorkflowError):
    """The actor lacks standing to perform this mutation."""

    code = "FORBIDDEN"
    status_code = 403


class Conflict(WorkflowError):
    """Duplicate key, concurrent transition collision or referential constraint."""

    code = "CONFLICT"
    status_code = 409


class InvalidState(ValidationFailed):
    """An evidence gate precondition is not met."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, precondition: str, details: Optional[Dict[str, Any]] = None):
        merged = {"precondition": precondition}
        merged.update(details or {})
        super().__init__(message, merged)
        self.precondition = precondition
