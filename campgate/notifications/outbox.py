"""Dispatcher that writes notifications to the repository's outbox table."""

from __future__ import annotations

import logging

from ..models import Notification
from ..persistence import ApprovalRepository
from .base import NotificationDispatcher

logger = logging.getLogger(__name__)


class OutboxDispatcher(NotificationDispatcher):
    """Persist notifications as rows for an external sender to drain."""

    def __init__(self, repository: ApprovalRepository) -> None:
        self._repository = repository

    async def dispatch(self, notifications: list[Notification]) -> None:
        if not notifications:
            return
        await self._repository.add_notifications(notifications)
        logger.debug(f"Queued {len(notifications)} notification(s) in outbox")
