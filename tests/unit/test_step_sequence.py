"""Step ordering tests."""

from campgate.models import StepSequence, WorkflowStep


def _step(order: int, role: str) -> WorkflowStep:
    return WorkflowStep(
        workflow_id="wf", step_order=order, name=f"{role} review", required_role=role
    )


def test_steps_are_ordered_by_step_order():
    ops = _step(20, "operations")
    marketing = _step(10, "marketing")
    admin = _step(30, "admin")

    sequence = StepSequence.from_steps([ops, admin, marketing])

    assert [s.required_role for s in sequence.steps] == ["marketing", "operations", "admin"]
    assert sequence.first() == marketing
    assert sequence.next_after(marketing.id) == ops
    assert sequence.next_after(ops.id) == admin


def test_last_and_unknown_steps_have_no_successor():
    only = _step(1, "marketing")
    sequence = StepSequence.from_steps([only])

    assert sequence.next_after(only.id) is None
    assert sequence.next_after("missing") is None
    assert sequence.get("missing") is None


def test_empty_sequence():
    sequence = StepSequence()

    assert sequence.first() is None
    assert len(sequence) == 0


def test_approvals_needed():
    single = _step(1, "marketing")
    single.required_approver_count = 4
    assert single.approvals_needed == 1

    multi = _step(2, "marketing")
    multi.allow_multiple_approvers = True
    multi.required_approver_count = 3
    assert multi.approvals_needed == 3

    multi.required_approver_count = 0
    assert multi.approvals_needed == 1
