"""Typed, user-facing failures raised by the donation workflow services."""
from typing import Any


class WorkflowError(Exception):
    """Base class for expected workflow failures.

    Carries a stable ``code`` and a ``detail`` dict so callers can explain
    the failure without parsing the message.
    """

    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, **self.detail}


class ValidationError(WorkflowError):
    """Malformed input, e.g. units out of range or an unknown blood group."""

    status_code = 422
    code = "validation_error"


class NotFoundError(WorkflowError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(WorkflowError):
    """A state machine transition was attempted from the wrong source state."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, entity: str, entity_id: str, current_status: str, required_status: str | tuple[str, ...]):
        if isinstance(required_status, tuple):
            required_status = " or ".join(required_status)
        super().__init__(
            f"{entity} {entity_id} is {current_status}; this action requires {required_status}",
            entity=entity,
            entity_id=entity_id,
            current_status=current_status,
            required_status=required_status,
        )


class PreconditionError(WorkflowError):
    """A cross-entity precondition failed, e.g. no donor assigned yet."""

    status_code = 409
    code = "precondition_failed"


class NotEligibleError(WorkflowError):
    status_code = 403
    code = "not_eligible"


class BloodGroupMismatchError(WorkflowError):
    status_code = 400
    code = "blood_group_mismatch"


class DuplicateOptInError(WorkflowError):
    status_code = 409
    code = "duplicate_opt_in"


class RequestNotAvailableError(WorkflowError):
    status_code = 409
    code = "request_not_available"


class ReassignmentWindowClosedError(WorkflowError):
    status_code = 409
    code = "reassignment_window_closed"
