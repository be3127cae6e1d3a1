"""Load workflow definitions from YAML files.

A definition file lists workflows with their steps::

    workflows:
      - name: Camp listing review
        resource_type: camp_listing
        steps:
          - name: Marketing review
            required_role: marketing
          - name: Operations review
            required_role: operations
            can_reject: false

``step_order`` defaults to the step's position in the list. Ids are derived
from the workflow's resource type and name when omitted, so loading the
same file twice updates the workflow in place.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import DefinitionError
from .models import Workflow, WorkflowStep


class StepDefinition(BaseModel):
    id: Optional[str] = None
    step_order: Optional[int] = None
    name: str
    description: Optional[str] = None
    required_role: str
    required_permission: Optional[str] = None
    allow_multiple_approvers: bool = False
    required_approver_count: int = Field(default=1, ge=1)
    can_reject: bool = True


class WorkflowDefinition(BaseModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    resource_type: str
    is_active: bool = True
    is_sequential: bool = True
    steps: List[StepDefinition] = Field(default_factory=list)

    def to_models(self) -> tuple[Workflow, list[WorkflowStep]]:
        workflow_id = self.id or str(
            uuid.uuid5(uuid.NAMESPACE_URL, f"campgate:{self.resource_type}:{self.name}")
        )
        workflow = Workflow(
            id=workflow_id,
            name=self.name,
            description=self.description,
            resource_type=self.resource_type,
            is_active=self.is_active,
            is_sequential=self.is_sequential,
        )

        steps: list[WorkflowStep] = []
        for position, step in enumerate(self.steps, start=1):
            order = step.step_order if step.step_order is not None else position
            steps.append(
                WorkflowStep(
                    id=step.id or str(uuid.uuid5(uuid.NAMESPACE_URL, f"{workflow_id}:{order}")),
                    workflow_id=workflow_id,
                    step_order=order,
                    name=step.name,
                    description=step.description,
                    required_role=step.required_role,
                    required_permission=step.required_permission,
                    allow_multiple_approvers=step.allow_multiple_approvers,
                    required_approver_count=step.required_approver_count,
                    can_reject=step.can_reject,
                )
            )

        orders = [s.step_order for s in steps]
        if len(set(orders)) != len(orders):
            raise DefinitionError(f"Workflow '{self.name}' has duplicate step_order values")
        return workflow, steps


class DefinitionFile(BaseModel):
    workflows: List[WorkflowDefinition] = Field(default_factory=list)


def load_workflow_definitions(
    path: str | Path,
) -> list[tuple[Workflow, list[WorkflowStep]]]:
    """Parse ``path`` into workflows paired with their steps."""

    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise DefinitionError(f"Definition file not found: {path}") from e
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML in {path}: {e}") from e

    try:
        parsed = DefinitionFile(**data)
    except (TypeError, ValidationError) as e:
        raise DefinitionError(f"Invalid workflow definition in {path}: {e}") from e

    return [definition.to_models() for definition in parsed.workflows]
