"""In-memory dispatcher for testing."""

from __future__ import annotations

from ..models import Notification
from .base import NotificationDispatcher


class InMemoryDispatcher(NotificationDispatcher):
    """Collect dispatched notifications in a list."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def dispatch(self, notifications: list[Notification]) -> None:
        self.sent.extend(notifications)

    def for_recipient(self, recipient_id: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient_id == recipient_id]
