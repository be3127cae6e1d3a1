"""Exceptions raised by the approval engine and its stores.

Every exception carries a stable ``code`` so callers that only see an
``OperationResult`` can still branch on the failure kind.
"""

from __future__ import annotations


class ApprovalError(Exception):
    """Base class for approval workflow failures."""

    code = "approval_error"


class NotFound(ApprovalError):
    code = "not_found"


class WorkflowNotFound(NotFound):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class RequestNotFound(NotFound):
    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class StepNotFound(NotFound):
    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Workflow step not found: {step_id}")


class InvalidState(ApprovalError):
    """The request is not in a status that allows the operation."""

    code = "invalid_state"


class NoActiveStep(ApprovalError):
    code = "no_active_step"

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Approval request {request_id} has no current step")


class NoStepsConfigured(ApprovalError):
    code = "no_steps_configured"

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"No workflow steps found for workflow {workflow_id}")


class NotAuthorized(ApprovalError):
    """The acting user may not perform the operation at the current step."""

    code = "not_authorized"


class PersistenceError(ApprovalError):
    """The underlying datastore read or write failed."""

    code = "persistence_failure"


class DefinitionError(ApprovalError):
    """A workflow definition file is malformed."""

    code = "invalid_definition"


__all__ = [
    "ApprovalError",
    "NotFound",
    "WorkflowNotFound",
    "RequestNotFound",
    "StepNotFound",
    "InvalidState",
    "NoActiveStep",
    "NoStepsConfigured",
    "NotAuthorized",
    "PersistenceError",
    "DefinitionError",
]
