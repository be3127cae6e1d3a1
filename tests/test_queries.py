"""Dashboard queries and failure reporting."""

import pytest

from campgate import ApprovalWorkflowEngine
from campgate.errors import PersistenceError
from campgate.notifications import NotificationDispatcher


class BrokenDispatcher(NotificationDispatcher):
    async def dispatch(self, notifications):
        raise ConnectionError("mail relay down")


async def _submit(engine, workflow, resource_id, user="organizer-1"):
    result = await engine.submit_approval_request(
        workflow.id, workflow.resource_type, resource_id, user
    )
    assert result.success, result.error
    return result.request_id


@pytest.mark.asyncio
async def test_pending_queue_is_shared_by_role(engine, camp_workflow):
    workflow, _ = camp_workflow
    first = await _submit(engine, workflow, "camp-1")
    second = await _submit(engine, workflow, "camp-2")
    await engine.approve_request(second, "marketing-1")

    mia = await engine.get_user_pending_approvals("marketing-1", "marketing")
    sam = await engine.get_user_pending_approvals("marketing-2", "marketing")
    ops = await engine.get_user_pending_approvals("ops-1", "operations")

    assert mia.ok and sam.ok and ops.ok
    assert [r.id for r in mia.items] == [first]
    assert [r.id for r in sam.items] == [first]
    assert [r.id for r in ops.items] == [second]

    await engine.approve_request(second, "ops-1")
    ops = await engine.get_user_pending_approvals("ops-1", "operations")
    assert ops.ok
    assert ops.items == []


@pytest.mark.asyncio
async def test_submitted_requests_newest_first(engine, camp_workflow):
    workflow, _ = camp_workflow
    ids = [await _submit(engine, workflow, f"camp-{i}") for i in range(3)]
    await _submit(engine, workflow, "camp-other", user="admin-1")

    result = await engine.get_user_submitted_requests("organizer-1")
    assert result.ok
    assert [r.id for r in result.items] == list(reversed(ids))


@pytest.mark.asyncio
async def test_query_failure_is_not_an_empty_queue(repo, dispatcher, monkeypatch):
    async def boom(*args, **kwargs):
        raise PersistenceError("connection refused")

    monkeypatch.setattr(repo, "list_pending_for_role", boom)
    monkeypatch.setattr(repo, "list_submitted_by", boom)
    monkeypatch.setattr(repo, "list_actions", boom)
    engine = ApprovalWorkflowEngine(repository=repo, dispatcher=dispatcher)

    pending = await engine.get_user_pending_approvals("u", "marketing")
    submitted = await engine.get_user_submitted_requests("u")
    history = await engine.get_approval_history("r")

    for result in (pending, submitted, history):
        assert result.ok is False
        assert result.items == []
        assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_notification_failure_does_not_block_transitions(repo, camp_workflow):
    workflow, (_, operations) = camp_workflow
    engine = ApprovalWorkflowEngine(repository=repo, dispatcher=BrokenDispatcher())

    request_id = await _submit(engine, workflow, "camp-1")
    result = await engine.approve_request(request_id, "marketing-1")

    assert result.success
    req = await repo.get_request(request_id)
    assert req.current_step_id == operations.id


@pytest.mark.asyncio
async def test_persistence_failure_is_reported(repo, dispatcher, camp_workflow, monkeypatch):
    workflow, _ = camp_workflow
    engine = ApprovalWorkflowEngine(repository=repo, dispatcher=dispatcher)
    request_id = await _submit(engine, workflow, "camp-1")

    async def boom(*args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(repo, "record_transition", boom)
    result = await engine.approve_request(request_id, "marketing-1")

    assert not result.success
    assert result.error_code == "persistence_failure"
    assert "disk full" in result.error


@pytest.mark.asyncio
async def test_workflow_lookup_by_resource_type(engine, repo, camp_workflow, build_workflow):
    workflow, steps = camp_workflow
    retired, retired_steps = build_workflow("admin", resource_type="session_listing")
    retired.is_active = False
    await repo.save_workflow(retired, retired_steps)

    found = await engine.get_workflow_by_resource_type("camp_listing")
    assert found is not None
    assert found.id == workflow.id
    assert await engine.get_workflow_by_resource_type("session_listing") is None

    sequence = await engine.get_workflow_steps(workflow.id)
    assert [s.id for s in sequence.steps] == [s.id for s in steps]
