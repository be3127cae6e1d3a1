"""Base interface for approval notification dispatch."""

from __future__ import annotations

import abc

from ..models import Notification


class NotificationDispatcher(metaclass=abc.ABCMeta):
    """Hands approval notifications to whatever delivers them."""

    @abc.abstractmethod
    async def dispatch(self, notifications: list[Notification]) -> None:
        """Send ``notifications``; raise if they could not be handed off."""
        raise NotImplementedError
