"""Data models for approval workflows, requests and their audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from .constants import DEFAULT_PRIORITY

RequestStatus = Literal["pending", "approved", "rejected", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
ActionType = Literal["approved", "rejected", "requested_changes", "commented"]
NotificationType = Literal["approval_needed", "approved", "rejected", "changes_requested"]

TERMINAL_STATUSES = frozenset({"approved", "rejected", "cancelled"})


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStep(BaseModel):
    """One stage of a workflow, gated to a single role."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    step_order: int
    name: str
    description: Optional[str] = None
    required_role: str
    required_permission: Optional[str] = None
    allow_multiple_approvers: bool = False
    required_approver_count: int = 1
    can_reject: bool = True

    @property
    def approvals_needed(self) -> int:
        """Distinct approvals required before this step completes."""
        if not self.allow_multiple_approvers:
            return 1
        return max(1, self.required_approver_count)


class Workflow(BaseModel):
    """Named approval template for one resource type."""

    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    resource_type: str
    is_active: bool = True
    # Steps always run in order; the flag is stored for workflow authors.
    is_sequential: bool = True


class StepSequence(BaseModel):
    """Steps of a workflow in ``step_order`` order."""

    steps: List[WorkflowStep] = Field(default_factory=list)

    @classmethod
    def from_steps(cls, steps: List[WorkflowStep]) -> "StepSequence":
        return cls(steps=sorted(steps, key=lambda s: s.step_order))

    def first(self) -> Optional[WorkflowStep]:
        """Entry step of the workflow, or ``None`` if it has no steps."""
        return self.steps[0] if self.steps else None

    def get(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)

    def next_after(self, step_id: str) -> Optional[WorkflowStep]:
        """Return the step following ``step_id``; ``None`` when it is the last."""
        current = self.get(step_id)
        if current is None:
            return None
        later = [s for s in self.steps if s.step_order > current.step_order]
        return later[0] if later else None

    def __len__(self) -> int:
        return len(self.steps)


class ApprovalRequest(BaseModel):
    """A single resource's journey through a workflow."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    resource_type: str
    resource_id: str
    current_step_id: Optional[str] = None
    status: RequestStatus = "pending"
    submitted_by: str
    submitted_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    priority: Priority = DEFAULT_PRIORITY
    metadata: dict[str, Any] = Field(default_factory=dict)
    rejection_reason: Optional[str] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Profile(BaseModel):
    """Actor identity and role as held by the profile directory."""

    id: str
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.id


class ApprovalAction(BaseModel):
    """Immutable record of one actor decision against a request."""

    id: str = Field(default_factory=_new_id)
    request_id: str
    step_id: Optional[str] = None
    actor_id: str
    action: ActionType
    comment: Optional[str] = None
    changes_requested: Optional[Any] = None
    created_at: datetime = Field(default_factory=utcnow)
    actor: Optional[Profile] = None


class Notification(BaseModel):
    """Outbound notice of a request state change for one recipient."""

    id: str = Field(default_factory=_new_id)
    request_id: str
    recipient_id: str
    notification_type: NotificationType
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class OperationResult(BaseModel):
    """Outcome of a mutating engine call."""

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


class SubmitResult(OperationResult):
    request_id: Optional[str] = None


class ApproveResult(OperationResult):
    completed: Optional[bool] = None


T = TypeVar("T")


class QueryResult(BaseModel, Generic[T]):
    """Outcome of a read; ``ok`` is ``False`` when the store could not be queried."""

    ok: bool = True
    items: List[T] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "QueryResult[T]":
        return cls(ok=False, items=[], error=error)
