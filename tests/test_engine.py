"""Approval lifecycle tests against the in-memory store."""

import pytest

from campgate import ApprovalAction


async def _submit(engine, workflow, resource_id="camp-42"):
    result = await engine.submit_approval_request(
        workflow.id, workflow.resource_type, resource_id, "organizer-1"
    )
    assert result.success, result.error
    return result.request_id


@pytest.mark.asyncio
async def test_two_step_approval_completes(engine, repo, camp_workflow):
    """Marketing then operations approval moves the listing to approved."""
    workflow, (marketing, operations) = camp_workflow

    request_id = await _submit(engine, workflow)
    req = await repo.get_request(request_id)
    assert req.status == "pending"
    assert req.current_step_id == marketing.id

    first = await engine.approve_request(request_id, "marketing-1")
    assert first.success
    assert first.completed is False
    req = await repo.get_request(request_id)
    assert req.status == "pending"
    assert req.current_step_id == operations.id
    assert req.completed_at is None

    second = await engine.approve_request(request_id, "ops-1", comment="looks good")
    assert second.success
    assert second.completed is True
    req = await repo.get_request(request_id)
    assert req.status == "approved"
    assert req.completed_at is not None
    assert req.current_step_id is None


@pytest.mark.asyncio
async def test_reject_after_first_step(engine, repo, dispatcher, camp_workflow):
    workflow, (marketing, operations) = camp_workflow
    request_id = await _submit(engine, workflow)

    await engine.approve_request(request_id, "marketing-1")
    result = await engine.reject_request(request_id, "ops-1", "budget too high")
    assert result.success

    req = await repo.get_request(request_id)
    assert req.status == "rejected"
    assert req.rejection_reason == "budget too high"
    assert req.completed_at is not None

    actions = await repo.list_actions(request_id)
    assert [a.action for a in actions] == ["approved", "rejected"]
    assert actions[0].step_id == marketing.id
    assert actions[1].step_id == operations.id
    assert actions[1].comment == "budget too high"

    assert [n.notification_type for n in dispatcher.for_recipient("organizer-1")] == [
        "rejected"
    ]


@pytest.mark.asyncio
async def test_submit_to_workflow_without_steps(engine, repo, profiles, build_workflow):
    workflow, _ = build_workflow()
    await repo.save_workflow(workflow, [])

    result = await engine.submit_approval_request(
        workflow.id, "camp_listing", "camp-1", "organizer-1"
    )
    assert not result.success
    assert result.error_code == "no_steps_configured"
    assert result.request_id is None
    assert await repo.list_submitted_by("organizer-1") == []


@pytest.mark.asyncio
async def test_submit_to_unknown_workflow(engine, repo):
    result = await engine.submit_approval_request("missing", "camp_listing", "camp-1", "u")
    assert not result.success
    assert result.error_code == "not_found"


@pytest.mark.asyncio
async def test_linear_progression_notifies_each_step_once(
    engine, repo, dispatcher, profiles, build_workflow
):
    workflow, steps = build_workflow("marketing", "operations", "admin")
    await repo.save_workflow(workflow, steps)
    request_id = await _submit(engine, workflow)

    approvers = ["marketing-1", "ops-1", "admin-1"]
    outcomes = []
    for approver in approvers:
        req = await repo.get_request(request_id)
        assert req.completed_at is None
        outcomes.append((await engine.approve_request(request_id, approver)).completed)

    assert outcomes == [False, False, True]
    req = await repo.get_request(request_id)
    assert req.status == "approved"
    assert req.completed_at is not None

    needed = [n.recipient_id for n in dispatcher.sent if n.notification_type == "approval_needed"]
    assert sorted(needed) == ["admin-1", "marketing-1", "marketing-2", "ops-1"]
    assert len(needed) == len(set(needed))
    assert [n.notification_type for n in dispatcher.for_recipient("organizer-1")] == [
        "approved"
    ]


@pytest.mark.asyncio
async def test_terminal_requests_refuse_further_decisions(engine, repo, profiles, build_workflow):
    workflow, steps = build_workflow("marketing")
    await repo.save_workflow(workflow, steps)

    approved_id = await _submit(engine, workflow, "camp-1")
    assert (await engine.approve_request(approved_id, "marketing-1")).completed

    rejected_id = await _submit(engine, workflow, "camp-2")
    assert (await engine.reject_request(rejected_id, "marketing-1", "no")).success

    for request_id in (approved_id, rejected_id):
        before = len(await repo.list_actions(request_id))
        again = await engine.approve_request(request_id, "marketing-2")
        assert not again.success
        assert again.error_code == "invalid_state"
        reject = await engine.reject_request(request_id, "marketing-2", "late")
        assert reject.error_code == "invalid_state"
        assert len(await repo.list_actions(request_id)) == before


@pytest.mark.asyncio
async def test_reject_at_any_step_stops_progress(engine, repo, dispatcher, profiles, build_workflow):
    roles = ["marketing", "operations", "admin"]
    deciders = ["marketing-1", "ops-1", "admin-1"]
    for k in range(len(roles)):
        workflow, steps = build_workflow(*roles, resource_type=f"listing_{k}")
        await repo.save_workflow(workflow, steps)
        request_id = await _submit(engine, workflow, f"camp-{k}")
        for approver in deciders[:k]:
            await engine.approve_request(request_id, approver)

        dispatcher.sent.clear()
        result = await engine.reject_request(request_id, deciders[k], "not this season")
        assert result.success

        req = await repo.get_request(request_id)
        assert req.status == "rejected"
        assert all(n.notification_type != "approval_needed" for n in dispatcher.sent)
        visited = {a.step_id for a in await repo.list_actions(request_id)}
        assert visited == {s.id for s in steps[: k + 1]}


@pytest.mark.asyncio
async def test_request_changes_leaves_state_alone(engine, repo, dispatcher, camp_workflow):
    workflow, (marketing, _) = camp_workflow
    request_id = await _submit(engine, workflow)

    for i in range(3):
        result = await engine.request_changes(
            request_id, "marketing-1", {"photos": "add more"}, comment=f"round {i}"
        )
        assert result.success
        req = await repo.get_request(request_id)
        assert req.status == "pending"
        assert req.current_step_id == marketing.id

    actions = await repo.list_actions(request_id)
    assert [a.action for a in actions] == ["requested_changes"] * 3
    assert actions[0].changes_requested == {"photos": "add more"}
    assert [n.notification_type for n in dispatcher.for_recipient("organizer-1")] == [
        "changes_requested"
    ] * 3


@pytest.mark.asyncio
async def test_history_records_every_call_in_order(engine, camp_workflow):
    workflow, _ = camp_workflow
    request_id = await _submit(engine, workflow)

    await engine.add_comment(request_id, "organizer-1", "Early bird pricing included")
    await engine.request_changes(request_id, "marketing-1", {"title": "shorter"})
    await engine.add_comment(request_id, "organizer-1", "Title updated")
    await engine.approve_request(request_id, "marketing-1")
    await engine.reject_request(request_id, "ops-1", "insurance missing")

    history = await engine.get_approval_history(request_id)
    assert history.ok
    assert [a.action for a in history.items] == [
        "commented",
        "requested_changes",
        "commented",
        "approved",
        "rejected",
    ]
    assert history.items[0].actor.first_name == "Olive"
    assert history.items[3].actor.role == "marketing"


@pytest.mark.asyncio
async def test_comment_on_unknown_request(engine):
    result = await engine.add_comment("nope", "organizer-1", "hello")
    assert not result.success
    assert result.error_code == "not_found"


@pytest.mark.asyncio
async def test_approve_unknown_request(engine):
    result = await engine.approve_request("nope", "marketing-1")
    assert not result.success
    assert result.error_code == "not_found"
    assert result.completed is None


@pytest.mark.asyncio
async def test_request_changes_on_finished_request(engine, repo, profiles, build_workflow):
    workflow, steps = build_workflow("marketing")
    await repo.save_workflow(workflow, steps)
    request_id = await _submit(engine, workflow)
    assert (await engine.approve_request(request_id, "marketing-1")).completed

    result = await engine.request_changes(request_id, "marketing-2", {"photos": "more"})

    assert not result.success
    assert result.error_code == "invalid_state"
    req = await repo.get_request(request_id)
    assert req.status == "approved"
    assert req.version == 1


@pytest.mark.asyncio
async def test_current_step_missing_from_store(engine, repo, camp_workflow):
    workflow, (marketing, _) = camp_workflow
    request_id = await _submit(engine, workflow)

    req = await repo.get_request(request_id)
    dangling = req.model_copy(update={"current_step_id": "deleted-step"})
    comment = ApprovalAction(
        request_id=request_id, step_id=marketing.id, actor_id="admin-1", action="commented"
    )
    assert await repo.record_transition(dangling, req.version, comment)

    result = await engine.approve_request(request_id, "marketing-1")

    assert not result.success
    assert result.error_code == "not_found"
    assert (await repo.get_request(request_id)).status == "pending"


@pytest.mark.asyncio
async def test_step_owned_by_another_workflow_does_not_finish_request(
    engine, repo, profiles, build_workflow
):
    workflow, (marketing, operations) = build_workflow("marketing", "operations")
    marketing.id = "listing-review"
    await repo.save_workflow(workflow, [marketing, operations])
    request_id = await _submit(engine, workflow)

    other, (other_step,) = build_workflow("marketing", resource_type="session_listing")
    other_step.id = "listing-review"
    await repo.save_workflow(other, [other_step])

    result = await engine.approve_request(request_id, "marketing-1")

    assert not result.success
    assert result.error_code == "not_found"
    req = await repo.get_request(request_id)
    assert req.status == "pending"
    assert req.current_step_id == "listing-review"
    assert await repo.list_actions(request_id) == []
