"""Shared fixtures: an in-memory store, a recording dispatcher and a camp listing workflow."""

from __future__ import annotations

import pytest
import pytest_asyncio

from campgate import ApprovalWorkflowEngine, Profile, Workflow, WorkflowStep
from campgate.notifications import InMemoryDispatcher
from campgate.persistence import InMemoryApprovalRepository

PROFILES = [
    Profile(id="organizer-1", role="camp_organizer", first_name="Olive", last_name="Park"),
    Profile(id="marketing-1", role="marketing", first_name="Mia", last_name="Chen"),
    Profile(id="marketing-2", role="marketing", first_name="Sam", last_name="Ortiz"),
    Profile(id="ops-1", role="operations", first_name="Noor", last_name="Haddad"),
    Profile(id="admin-1", role="admin", first_name="Ada", last_name="Quinn"),
]


def make_workflow(
    *roles: str, resource_type: str = "camp_listing", **step_fields
) -> tuple[Workflow, list[WorkflowStep]]:
    """Build a workflow with one step per role, in the given order."""
    workflow = Workflow(name=f"{resource_type} review", resource_type=resource_type)
    steps = [
        WorkflowStep(
            workflow_id=workflow.id,
            step_order=order,
            name=f"{role} review",
            required_role=role,
            **step_fields,
        )
        for order, role in enumerate(roles, start=1)
    ]
    return workflow, steps


@pytest.fixture
def build_workflow():
    return make_workflow


@pytest.fixture
def repo() -> InMemoryApprovalRepository:
    return InMemoryApprovalRepository()


@pytest.fixture
def dispatcher() -> InMemoryDispatcher:
    return InMemoryDispatcher()


@pytest.fixture
def engine(repo, dispatcher) -> ApprovalWorkflowEngine:
    return ApprovalWorkflowEngine(repository=repo, dispatcher=dispatcher)


@pytest_asyncio.fixture
async def profiles(repo):
    for profile in PROFILES:
        await repo.save_profile(profile)
    return PROFILES


@pytest_asyncio.fixture
async def camp_workflow(repo, profiles):
    """The two-step marketing -> operations camp listing workflow, saved."""
    workflow, steps = make_workflow("marketing", "operations")
    await repo.save_workflow(workflow, steps)
    return workflow, steps
