"""Walk a camp listing through a two-step review.

Run with:
    python guides/camp_listing_approval.py
"""

import asyncio

from campgate import ApprovalWorkflowEngine, Profile, Workflow, WorkflowStep
from campgate.notifications import InMemoryDispatcher
from campgate.persistence import InMemoryApprovalRepository


async def main() -> None:
    repository = InMemoryApprovalRepository()
    dispatcher = InMemoryDispatcher()
    engine = ApprovalWorkflowEngine(repository=repository, dispatcher=dispatcher)

    workflow = Workflow(name="Camp listing review", resource_type="camp_listing")
    await repository.save_workflow(
        workflow,
        [
            WorkflowStep(workflow_id=workflow.id, step_order=1, name="Marketing review", required_role="marketing"),
            WorkflowStep(workflow_id=workflow.id, step_order=2, name="Operations review", required_role="operations"),
        ],
    )
    for profile in [
        Profile(id="olive", role="camp_organizer", first_name="Olive"),
        Profile(id="mia", role="marketing", first_name="Mia"),
        Profile(id="noor", role="operations", first_name="Noor"),
    ]:
        await repository.save_profile(profile)

    submitted = await engine.submit_approval_request(
        workflow.id, "camp_listing", "lakeside-sailing", "olive", priority="high"
    )
    print("Submitted:", submitted.request_id)

    queue = await engine.get_user_pending_approvals("mia", "marketing")
    print("Marketing queue:", [r.resource_id for r in queue.items])

    print("Marketing:", await engine.approve_request(submitted.request_id, "mia"))
    print("Operations:", await engine.approve_request(submitted.request_id, "noor", comment="Insurance checked"))

    history = await engine.get_approval_history(submitted.request_id)
    for action in history.items:
        print(f"- {action.action} by {action.actor.display_name}")

    for notification in dispatcher.sent:
        print(f"notify {notification.recipient_id}: {notification.notification_type}")


if __name__ == "__main__":
    asyncio.run(main())
