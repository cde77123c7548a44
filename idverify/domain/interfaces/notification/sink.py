"""Notification sink interface."""
from abc import ABC, abstractmethod

from ...value_objects.verification import SessionEvent


class NotificationSink(ABC):
    """Interface for consumers of session outcome events."""

    @abstractmethod
    async def publish(self, event: SessionEvent) -> None:
        """
        Deliver a session event.

        Args:
            event: Stage transition, status, verdict or error event
        """
        pass
