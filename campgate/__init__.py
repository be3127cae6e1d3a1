"""campgate: approval workflows for camp marketplace listings."""

from .config import CampgateConfig, load_config
from .engine import ApprovalWorkflowEngine
from .models import (
    ApprovalAction,
    ApprovalRequest,
    ApproveResult,
    Notification,
    OperationResult,
    Profile,
    QueryResult,
    StepSequence,
    SubmitResult,
    Workflow,
    WorkflowStep,
)
from .notifications import get_dispatcher
from .persistence import get_repository

__version__ = "0.1.0"
__all__ = [
    "ApprovalWorkflowEngine",
    "ApprovalAction",
    "ApprovalRequest",
    "ApproveResult",
    "CampgateConfig",
    "Notification",
    "OperationResult",
    "Profile",
    "QueryResult",
    "StepSequence",
    "SubmitResult",
    "Workflow",
    "WorkflowStep",
    "get_dispatcher",
    "get_repository",
    "load_config",
]
