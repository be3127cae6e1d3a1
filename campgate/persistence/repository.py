"""Repository abstraction for approval workflow persistence."""

from __future__ import annotations

from typing import Protocol

from ..models import (
    ApprovalAction,
    ApprovalRequest,
    Notification,
    Profile,
    Workflow,
    WorkflowStep,
)


class ApprovalRepository(Protocol):
    """Protocol for approval workflow persistence backends."""

    # Workflow definitions
    async def save_workflow(self, workflow: Workflow, steps: list[WorkflowStep]) -> None:
        """Insert or replace a workflow together with its steps."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Retrieve a workflow by id."""

    async def get_workflow_by_resource_type(self, resource_type: str) -> Workflow | None:
        """Return the active workflow for ``resource_type``."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all workflows."""

    async def get_steps(self, workflow_id: str) -> list[WorkflowStep]:
        """Return the workflow's steps ordered by ``step_order``."""

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        """Retrieve a single step."""

    # Requests and actions
    async def create_request(self, request: ApprovalRequest) -> None:
        """Persist a newly submitted request."""

    async def get_request(self, request_id: str) -> ApprovalRequest | None:
        """Retrieve a request by id."""

    async def record_transition(
        self,
        request: ApprovalRequest,
        expected_version: int,
        action: ApprovalAction,
    ) -> bool:
        """Atomically append ``action`` and store ``request``.

        The write only happens if the stored version still equals
        ``expected_version``; the stored version becomes
        ``expected_version + 1``. Returns ``False`` when another writer got
        there first, in which case nothing is written.
        """

    async def append_action(self, action: ApprovalAction) -> None:
        """Append an action that does not change request state."""

    async def list_actions(self, request_id: str) -> list[ApprovalAction]:
        """Return a request's actions in the order they were recorded."""

    async def get_step_approvers(self, request_id: str, step_id: str) -> set[str]:
        """Return the distinct actors who approved ``step_id`` for a request."""

    async def list_pending_for_role(self, role: str) -> list[ApprovalRequest]:
        """Pending requests whose current step requires ``role``."""

    async def list_submitted_by(self, user_id: str) -> list[ApprovalRequest]:
        """Requests submitted by ``user_id``, newest first."""

    # Notifications
    async def add_notifications(self, notifications: list[Notification]) -> None:
        """Persist outbound notifications."""

    async def list_notifications(
        self, recipient_id: str | None = None
    ) -> list[Notification]:
        """Return stored notifications, optionally for one recipient."""

    # Profiles
    async def save_profile(self, profile: Profile) -> None:
        """Insert or replace a profile."""

    async def get_profile(self, actor_id: str) -> Profile | None:
        """Retrieve a profile by actor id."""

    async def list_actor_ids_with_role(self, role: str) -> list[str]:
        """Return the ids of every actor holding ``role``."""
