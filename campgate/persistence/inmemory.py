"""In-memory implementation of the approval repository."""

from __future__ import annotations

import asyncio
from typing import Dict, List

from ..models import (
    ApprovalAction,
    ApprovalRequest,
    Notification,
    Profile,
    Workflow,
    WorkflowStep,
)
from .repository import ApprovalRepository


class InMemoryApprovalRepository(ApprovalRepository):
    """Store approval state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Models are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._steps: Dict[str, WorkflowStep] = {}
        self._requests: Dict[str, ApprovalRequest] = {}
        self._request_seq: Dict[str, int] = {}
        self._actions: List[ApprovalAction] = []
        self._notifications: List[Notification] = []
        self._profiles: Dict[str, Profile] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow, steps: list[WorkflowStep]) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)
        for step_id in [s.id for s in self._steps.values() if s.workflow_id == workflow.id]:
            del self._steps[step_id]
        for step in steps:
            self._steps[step.id] = step.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def get_workflow_by_resource_type(self, resource_type: str) -> Workflow | None:
        for wf in self._workflows.values():
            if wf.resource_type == resource_type and wf.is_active:
                return wf.model_copy(deep=True)
        return None

    async def list_workflows(self) -> list[Workflow]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    async def get_steps(self, workflow_id: str) -> list[WorkflowStep]:
        steps = [s for s in self._steps.values() if s.workflow_id == workflow_id]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.step_order)]

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    # ------------------------------------------------------------------
    async def create_request(self, request: ApprovalRequest) -> None:
        async with self._lock:
            self._requests[request.id] = request.model_copy(deep=True)
            self._request_seq[request.id] = len(self._request_seq)

    async def get_request(self, request_id: str) -> ApprovalRequest | None:
        req = self._requests.get(request_id)
        return req.model_copy(deep=True) if req else None

    async def record_transition(
        self,
        request: ApprovalRequest,
        expected_version: int,
        action: ApprovalAction,
    ) -> bool:
        async with self._lock:
            stored = self._requests.get(request.id)
            if stored is None or stored.version != expected_version:
                return False
            updated = request.model_copy(deep=True)
            updated.version = expected_version + 1
            self._requests[request.id] = updated
            self._actions.append(action.model_copy(deep=True))
            return True

    async def append_action(self, action: ApprovalAction) -> None:
        async with self._lock:
            self._actions.append(action.model_copy(deep=True))

    async def list_actions(self, request_id: str) -> list[ApprovalAction]:
        return [a.model_copy(deep=True) for a in self._actions if a.request_id == request_id]

    async def get_step_approvers(self, request_id: str, step_id: str) -> set[str]:
        return {
            a.actor_id
            for a in self._actions
            if a.request_id == request_id and a.step_id == step_id and a.action == "approved"
        }

    async def list_pending_for_role(self, role: str) -> list[ApprovalRequest]:
        pending = []
        for req in self._requests.values():
            if req.status != "pending" or req.current_step_id is None:
                continue
            step = self._steps.get(req.current_step_id)
            if step is not None and step.required_role == role:
                pending.append(req.model_copy(deep=True))
        return pending

    async def list_submitted_by(self, user_id: str) -> list[ApprovalRequest]:
        mine = [r for r in self._requests.values() if r.submitted_by == user_id]
        mine.sort(key=lambda r: (r.submitted_at, self._request_seq[r.id]), reverse=True)
        return [r.model_copy(deep=True) for r in mine]

    # ------------------------------------------------------------------
    async def add_notifications(self, notifications: list[Notification]) -> None:
        self._notifications.extend(n.model_copy(deep=True) for n in notifications)

    async def list_notifications(
        self, recipient_id: str | None = None
    ) -> list[Notification]:
        return [
            n.model_copy(deep=True)
            for n in self._notifications
            if recipient_id is None or n.recipient_id == recipient_id
        ]

    # ------------------------------------------------------------------
    async def save_profile(self, profile: Profile) -> None:
        self._profiles[profile.id] = profile.model_copy(deep=True)

    async def get_profile(self, actor_id: str) -> Profile | None:
        profile = self._profiles.get(actor_id)
        return profile.model_copy(deep=True) if profile else None

    async def list_actor_ids_with_role(self, role: str) -> list[str]:
        return [p.id for p in self._profiles.values() if p.role == role]
