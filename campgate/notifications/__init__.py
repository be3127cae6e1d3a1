"""Notification dispatcher factory and initialization."""

from __future__ import annotations

from typing import Optional

from ..config import CampgateConfig, load_config
from ..persistence import ApprovalRepository, get_repository
from .base import NotificationDispatcher
from .inmemory import InMemoryDispatcher
from .outbox import OutboxDispatcher


def get_dispatcher(
    backend: Optional[str] = None,
    config: Optional[CampgateConfig] = None,
    repository: Optional[ApprovalRepository] = None,
) -> NotificationDispatcher:
    """Factory function to get the configured notification dispatcher."""

    backend = (backend or (config or load_config()).notifications.backend).lower()

    if backend == "outbox":
        return OutboxDispatcher(repository or get_repository())
    elif backend == "inmemory":
        return InMemoryDispatcher()
    else:
        raise ValueError(f"Unsupported notification backend: {backend}")


__all__ = [
    "NotificationDispatcher",
    "InMemoryDispatcher",
    "OutboxDispatcher",
    "get_dispatcher",
]
