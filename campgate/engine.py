"""Approval workflow engine: submission, step advancement and resolution."""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, TypeVar

from .constants import DEFAULT_PRIORITY
from .errors import (
    ApprovalError,
    InvalidState,
    NoActiveStep,
    NoStepsConfigured,
    NotAuthorized,
    PersistenceError,
    RequestNotFound,
    StepNotFound,
    WorkflowNotFound,
)
from .models import (
    ApprovalAction,
    ApprovalRequest,
    ApproveResult,
    NotificationType,
    Notification,
    OperationResult,
    Priority,
    Profile,
    QueryResult,
    StepSequence,
    SubmitResult,
    Workflow,
    WorkflowStep,
    utcnow,
)
from .notifications import NotificationDispatcher, get_dispatcher
from .persistence import ApprovalRepository, get_repository

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=OperationResult)


def _failure(result_cls: Type[ResultT], error: ApprovalError, context: str) -> ResultT:
    if isinstance(error, PersistenceError):
        logger.error(f"{context} failed: {error}")
    else:
        logger.warning(f"{context} refused: {error}")
    return result_cls(success=False, error=str(error), error_code=error.code)


class ApprovalWorkflowEngine:
    """Moves approval requests through their workflow's steps.

    Every mutating operation returns a result object instead of raising;
    ``success`` is ``False`` and ``error_code`` names the failure kind when
    the operation was refused or the store failed. State changes are
    written with a compare-and-swap on the request version, so two
    concurrent decisions on the same request cannot both apply.
    """

    def __init__(
        self,
        repository: ApprovalRepository | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._repository = repository or get_repository()
        self._dispatcher = dispatcher or get_dispatcher(repository=self._repository)

    @property
    def repository(self) -> ApprovalRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Workflow definitions
    async def get_workflow_by_resource_type(self, resource_type: str) -> Optional[Workflow]:
        return await self._repository.get_workflow_by_resource_type(resource_type)

    async def get_workflow_steps(self, workflow_id: str) -> StepSequence:
        steps = await self._repository.get_steps(workflow_id)
        return StepSequence.from_steps(steps)

    async def get_request(self, request_id: str) -> Optional[ApprovalRequest]:
        return await self._repository.get_request(request_id)

    # ------------------------------------------------------------------
    # Mutations
    async def submit_approval_request(
        self,
        workflow_id: str,
        resource_type: str,
        resource_id: str,
        submitted_by: str,
        priority: Priority = DEFAULT_PRIORITY,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SubmitResult:
        """Open a pending request at the workflow's first step."""
        try:
            workflow = await self._repository.get_workflow(workflow_id)
            if workflow is None:
                raise WorkflowNotFound(workflow_id)

            first_step = (await self.get_workflow_steps(workflow_id)).first()
            if first_step is None:
                raise NoStepsConfigured(workflow_id)

            request = ApprovalRequest(
                workflow_id=workflow_id,
                resource_type=resource_type,
                resource_id=resource_id,
                current_step_id=first_step.id,
                submitted_by=submitted_by,
                priority=priority,
                metadata=metadata or {},
            )
            await self._repository.create_request(request)
        except ApprovalError as e:
            return _failure(SubmitResult, e, f"Submission of {resource_type} {resource_id}")

        logger.info(
            f"Submitted {resource_type} {resource_id} for approval as request {request.id} "
            f"(step '{first_step.name}')"
        )
        await self._notify_approvers(request.id, first_step)
        return SubmitResult(success=True, request_id=request.id)

    async def approve_request(
        self, request_id: str, approver_id: str, comment: Optional[str] = None
    ) -> ApproveResult:
        """Record an approval at the current step and advance if the step is done.

        ``completed`` is ``True`` only when this approval finished the last
        step and the request is now ``approved``.
        """
        try:
            completed = await self._approve(request_id, approver_id, comment)
        except ApprovalError as e:
            return _failure(ApproveResult, e, f"Approval of request {request_id} by {approver_id}")
        return ApproveResult(success=True, completed=completed)

    async def reject_request(
        self, request_id: str, rejector_id: str, reason: str
    ) -> OperationResult:
        """Terminate the request as ``rejected`` at its current step."""
        try:
            request, step = await self._load_pending(request_id)
            await self._authorize(rejector_id, step)
            if not step.can_reject:
                raise NotAuthorized(f"Step '{step.name}' does not allow rejection")

            expected = request.version
            request.status = "rejected"
            request.rejection_reason = reason
            request.completed_at = utcnow()
            request.current_step_id = None
            await self._commit(
                request,
                expected,
                ApprovalAction(
                    request_id=request_id,
                    step_id=step.id,
                    actor_id=rejector_id,
                    action="rejected",
                    comment=reason,
                ),
            )
        except ApprovalError as e:
            return _failure(OperationResult, e, f"Rejection of request {request_id} by {rejector_id}")

        logger.info(f"Request {request_id} rejected at step '{step.name}' by {rejector_id}")
        await self._notify_submitter(request, "rejected")
        return OperationResult(success=True)

    async def request_changes(
        self,
        request_id: str,
        reviewer_id: str,
        changes: Any,
        comment: Optional[str] = None,
    ) -> OperationResult:
        """Ask the submitter for changes; the request stays at its current step."""
        try:
            request, step = await self._load_pending(request_id)
            await self._authorize(reviewer_id, step)
            await self._commit(
                request,
                request.version,
                ApprovalAction(
                    request_id=request_id,
                    step_id=step.id,
                    actor_id=reviewer_id,
                    action="requested_changes",
                    comment=comment,
                    changes_requested=changes,
                ),
            )
        except ApprovalError as e:
            return _failure(
                OperationResult, e, f"Change request on {request_id} by {reviewer_id}"
            )

        logger.info(f"Changes requested on request {request_id} by {reviewer_id}")
        await self._notify_submitter(request, "changes_requested")
        return OperationResult(success=True)

    async def add_comment(
        self, request_id: str, actor_id: str, comment: str
    ) -> OperationResult:
        """Attach a comment to the request's history."""
        try:
            request = await self._repository.get_request(request_id)
            if request is None:
                raise RequestNotFound(request_id)
            await self._repository.append_action(
                ApprovalAction(
                    request_id=request_id,
                    step_id=request.current_step_id,
                    actor_id=actor_id,
                    action="commented",
                    comment=comment,
                )
            )
        except ApprovalError as e:
            return _failure(OperationResult, e, f"Comment on request {request_id} by {actor_id}")
        return OperationResult(success=True)

    # ------------------------------------------------------------------
    # Queries
    async def get_user_pending_approvals(
        self, user_id: str, role: str
    ) -> QueryResult[ApprovalRequest]:
        """Pending requests waiting on ``role``; every holder of the role sees the same queue."""
        try:
            items = await self._repository.list_pending_for_role(role)
        except PersistenceError as e:
            logger.error(f"Error fetching pending approvals for {user_id} ({role}): {e}")
            return QueryResult[ApprovalRequest].failed(str(e))
        return QueryResult[ApprovalRequest](items=items)

    async def get_user_submitted_requests(self, user_id: str) -> QueryResult[ApprovalRequest]:
        try:
            items = await self._repository.list_submitted_by(user_id)
        except PersistenceError as e:
            logger.error(f"Error fetching requests submitted by {user_id}: {e}")
            return QueryResult[ApprovalRequest].failed(str(e))
        return QueryResult[ApprovalRequest](items=items)

    async def get_approval_history(self, request_id: str) -> QueryResult[ApprovalAction]:
        """All actions on a request, oldest first, with actor profiles attached."""
        try:
            actions = await self._repository.list_actions(request_id)
            profiles: dict[str, Optional[Profile]] = {}
            for action in actions:
                if action.actor_id not in profiles:
                    profiles[action.actor_id] = await self._repository.get_profile(
                        action.actor_id
                    )
                action.actor = profiles[action.actor_id]
        except PersistenceError as e:
            logger.error(f"Error fetching approval history for {request_id}: {e}")
            return QueryResult[ApprovalAction].failed(str(e))
        return QueryResult[ApprovalAction](items=actions)

    # ------------------------------------------------------------------
    # Transition internals
    async def _approve(
        self, request_id: str, approver_id: str, comment: Optional[str]
    ) -> bool:
        request, step = await self._load_pending(request_id)
        await self._authorize(approver_id, step)
        sequence = await self.get_workflow_steps(request.workflow_id)
        if sequence.get(step.id) is None:
            raise StepNotFound(step.id)

        expected = request.version
        action = ApprovalAction(
            request_id=request_id,
            step_id=step.id,
            actor_id=approver_id,
            action="approved",
            comment=comment,
        )

        if step.allow_multiple_approvers:
            approvers = await self._repository.get_step_approvers(request_id, step.id)
            if approver_id in approvers:
                raise InvalidState(f"{approver_id} already approved step '{step.name}'")
            if len(approvers) + 1 < step.approvals_needed:
                await self._commit(request, expected, action)
                logger.info(
                    f"Request {request_id}: {len(approvers) + 1}/{step.approvals_needed} "
                    f"approvals at step '{step.name}'"
                )
                return False

        next_step = sequence.next_after(step.id)
        if next_step is not None:
            request.current_step_id = next_step.id
            await self._commit(request, expected, action)
            logger.info(
                f"Request {request_id} advanced from '{step.name}' to '{next_step.name}'"
            )
            await self._notify_approvers(request_id, next_step)
            return False

        request.status = "approved"
        request.completed_at = utcnow()
        request.current_step_id = None
        await self._commit(request, expected, action)
        logger.info(f"Request {request_id} approved (final step '{step.name}')")
        await self._notify_submitter(request, "approved")
        return True

    async def _load_pending(self, request_id: str) -> tuple[ApprovalRequest, WorkflowStep]:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        if request.status != "pending":
            raise InvalidState(f"Request {request_id} is not pending (status: {request.status})")
        if request.current_step_id is None:
            raise NoActiveStep(request_id)
        step = await self._repository.get_step(request.current_step_id)
        if step is None:
            raise StepNotFound(request.current_step_id)
        return request, step

    async def _authorize(self, actor_id: str, step: WorkflowStep) -> None:
        profile = await self._repository.get_profile(actor_id)
        if profile is None or profile.role != step.required_role:
            raise NotAuthorized(
                f"{actor_id} does not hold role '{step.required_role}' "
                f"required by step '{step.name}'"
            )

    async def _commit(
        self, request: ApprovalRequest, expected_version: int, action: ApprovalAction
    ) -> None:
        if not await self._repository.record_transition(request, expected_version, action):
            raise InvalidState(f"Request {request.id} was modified concurrently")
        request.version = expected_version + 1

    # ------------------------------------------------------------------
    # Notification fan-out; failures never undo a committed transition
    async def _notify_approvers(self, request_id: str, step: WorkflowStep) -> None:
        try:
            recipients = await self._repository.list_actor_ids_with_role(step.required_role)
            await self._dispatcher.dispatch(
                [
                    Notification(
                        request_id=request_id,
                        recipient_id=recipient,
                        notification_type="approval_needed",
                    )
                    for recipient in recipients
                ]
            )
        except Exception as e:
            logger.error(f"Error notifying approvers for request {request_id}: {e}")

    async def _notify_submitter(
        self, request: ApprovalRequest, notification_type: NotificationType
    ) -> None:
        try:
            await self._dispatcher.dispatch(
                [
                    Notification(
                        request_id=request.id,
                        recipient_id=request.submitted_by,
                        notification_type=notification_type,
                    )
                ]
            )
        except Exception as e:
            logger.error(f"Error notifying submitter of request {request.id}: {e}")
