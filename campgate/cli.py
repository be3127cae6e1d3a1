"""Command line interface for campgate approval workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import typer

from campgate import ApprovalWorkflowEngine, get_repository, load_config
from campgate.definitions import load_workflow_definitions
from campgate.errors import DefinitionError
from campgate.models import OperationResult, Profile

app = typer.Typer(help="CLI for campgate approval workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
request_app = typer.Typer(help="Commands for submitting and deciding approval requests")
profile_app = typer.Typer(help="Commands for managing approver profiles")
notification_app = typer.Typer(help="Commands for inspecting queued notifications")

app.add_typer(workflow_app, name="workflow")
app.add_typer(request_app, name="request")
app.add_typer(profile_app, name="profile")
app.add_typer(notification_app, name="notification")


class PriorityChoice(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


def _engine() -> ApprovalWorkflowEngine:
    return ApprovalWorkflowEngine(repository=get_repository())


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _check(result: OperationResult) -> None:
    if not result.success:
        _fail(f"Error ({result.error_code}): {result.error}")


def _parse_json(value: Optional[str], option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        _fail(f"{option} must be valid JSON: {e}")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """campgate CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------------------------------------------------
# workflow
@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflow definitions.

    Example:
        campgate workflow list
        # Output: 3f2c...    camp_listing    Camp listing review    active
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        state = "active" if wf.is_active else "inactive"
        typer.echo(f"{wf.id}\t{wf.resource_type}\t{wf.name}\t{state}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow and its steps in order."""
    engine = _engine()
    wf = asyncio.run(engine.repository.get_workflow(workflow_id))
    if wf is None:
        _fail("Workflow not found")
    steps = asyncio.run(engine.get_workflow_steps(workflow_id))
    typer.echo(f"Workflow {wf.name} ({wf.id}) for {wf.resource_type}")
    if wf.description:
        typer.echo(wf.description)
    if not steps.steps:
        typer.echo("No steps configured")
    for step in steps.steps:
        quorum = (
            f", {step.approvals_needed} approvers" if step.allow_multiple_approvers else ""
        )
        reject = "" if step.can_reject else ", no rejection"
        typer.echo(f"{step.step_order}. {step.name} [{step.required_role}{quorum}{reject}]")


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Load workflow definitions from a YAML file.

    Existing workflows with the same id are replaced along with their steps.

    Example:
        campgate workflow load workflows.yaml
    """
    try:
        definitions = load_workflow_definitions(path)
    except DefinitionError as e:
        _fail(str(e))

    repo = get_repository()
    for workflow, steps in definitions:
        asyncio.run(repo.save_workflow(workflow, steps))
        typer.echo(f"Loaded workflow {workflow.name} ({workflow.id}) with {len(steps)} steps")


# ----------------------------------------------------------------------
# request
@request_app.command("submit")
def request_submit(
    workflow_id: str,
    resource_id: str,
    user: str = typer.Option(..., help="Id of the submitting user"),
    resource_type: Optional[str] = typer.Option(
        None, help="Resource type (defaults to the workflow's)"
    ),
    priority: PriorityChoice = typer.Option(PriorityChoice.medium),
    metadata: Optional[str] = typer.Option(None, help="JSON object stored with the request"),
) -> None:
    """
    Submit a resource for approval.

    Example:
        campgate request submit 3f2c... camp-42 --user organizer-1 --priority high
    """
    engine = _engine()
    if resource_type is None:
        wf = asyncio.run(engine.repository.get_workflow(workflow_id))
        if wf is None:
            _fail("Workflow not found")
        resource_type = wf.resource_type

    result = asyncio.run(
        engine.submit_approval_request(
            workflow_id,
            resource_type,
            resource_id,
            user,
            priority=priority.value,
            metadata=_parse_json(metadata, "--metadata"),
        )
    )
    _check(result)
    typer.echo(f"Submitted request {result.request_id}")


@request_app.command("approve")
def request_approve(
    request_id: str,
    user: str = typer.Option(..., help="Id of the approving user"),
    comment: Optional[str] = None,
) -> None:
    """Approve the request's current step."""
    result = asyncio.run(_engine().approve_request(request_id, user, comment))
    _check(result)
    if result.completed:
        typer.echo(f"Request {request_id} approved")
    else:
        typer.echo(f"Approval recorded for request {request_id}")


@request_app.command("reject")
def request_reject(
    request_id: str,
    user: str = typer.Option(..., help="Id of the rejecting user"),
    reason: str = typer.Option(..., help="Reason shown to the submitter"),
) -> None:
    """Reject the request; this ends the workflow."""
    result = asyncio.run(_engine().reject_request(request_id, user, reason))
    _check(result)
    typer.echo(f"Request {request_id} rejected")


@request_app.command("changes")
def request_changes(
    request_id: str,
    user: str = typer.Option(..., help="Id of the reviewing user"),
    changes: str = typer.Option(..., help="JSON describing the requested changes"),
    comment: Optional[str] = None,
) -> None:
    """Ask the submitter for changes without moving the request."""
    result = asyncio.run(
        _engine().request_changes(
            request_id, user, _parse_json(changes, "--changes"), comment
        )
    )
    _check(result)
    typer.echo(f"Changes requested on request {request_id}")


@request_app.command("comment")
def request_comment(
    request_id: str,
    text: str,
    user: str = typer.Option(..., help="Id of the commenting user"),
) -> None:
    """Add a comment to the request's history."""
    result = asyncio.run(_engine().add_comment(request_id, user, text))
    _check(result)
    typer.echo(f"Comment added to request {request_id}")


@request_app.command("show")
def request_show(request_id: str) -> None:
    """
    Show a request with its full action history.

    Example:
        campgate request show 9a1b...
        # Output: Request 9a1b...: pending (camp_listing camp-42)
        #         - approved by Mia Chen (marketing) 2026-06-01 10:00
    """
    engine = _engine()
    req = asyncio.run(engine.get_request(request_id))
    if req is None:
        _fail("Request not found")
    typer.echo(f"Request {req.id}: {req.status} ({req.resource_type} {req.resource_id})")
    typer.echo(f"Submitted by {req.submitted_by} at {req.submitted_at} [{req.priority}]")
    if req.current_step_id:
        step = asyncio.run(engine.repository.get_step(req.current_step_id))
        if step is not None:
            typer.echo(f"Current step: {step.name} ({step.required_role})")
    if req.rejection_reason:
        typer.echo(f"Rejection reason: {req.rejection_reason}")
    if req.completed_at:
        typer.echo(f"Completed at {req.completed_at}")

    history = asyncio.run(engine.get_approval_history(request_id))
    if not history.ok:
        _fail(f"Could not load history: {history.error}")
    for action in history.items:
        actor = (
            f"{action.actor.display_name} ({action.actor.role})"
            if action.actor
            else action.actor_id
        )
        line = f"- {action.action} by {actor} {action.created_at}"
        if action.comment:
            line += f": {action.comment}"
        typer.echo(line)


@request_app.command("pending")
def request_pending(
    role: str = typer.Option(..., help="Approver role whose queue to show"),
    user: str = typer.Option("", help="Id of the viewing user"),
) -> None:
    """List pending requests waiting on a role."""
    result = asyncio.run(_engine().get_user_pending_approvals(user, role))
    if not result.ok:
        _fail(f"Could not load pending approvals: {result.error}")
    if not result.items:
        typer.echo("No pending approvals")
        return
    for req in result.items:
        typer.echo(f"{req.id}\t{req.resource_type}\t{req.resource_id}\t{req.priority}")


@request_app.command("submitted")
def request_submitted(
    user: str = typer.Option(..., help="Id of the submitting user"),
) -> None:
    """List requests submitted by a user, newest first."""
    result = asyncio.run(_engine().get_user_submitted_requests(user))
    if not result.ok:
        _fail(f"Could not load submitted requests: {result.error}")
    if not result.items:
        typer.echo("No requests found")
        return
    for req in result.items:
        typer.echo(f"{req.id}\t{req.status}\t{req.resource_type}\t{req.resource_id}")


# ----------------------------------------------------------------------
# profile / notification
@profile_app.command("add")
def profile_add(
    actor_id: str,
    role: str = typer.Option(..., help="Role the actor holds"),
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> None:
    """Create or update an actor profile."""
    profile = Profile(id=actor_id, role=role, first_name=first_name, last_name=last_name)
    asyncio.run(get_repository().save_profile(profile))
    typer.echo(f"Saved profile {actor_id} ({role})")


@notification_app.command("list")
def notification_list(
    recipient: Optional[str] = typer.Option(None, help="Only show this recipient's"),
) -> None:
    """List notifications waiting in the outbox."""
    notifications = asyncio.run(get_repository().list_notifications(recipient))
    if not notifications:
        typer.echo("No notifications found")
        return
    for n in notifications:
        typer.echo(f"{n.recipient_id}\t{n.notification_type}\t{n.request_id}")
