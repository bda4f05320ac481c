"""
Abstract interface for notification sinks.
A sink either delivers a payload or raises SinkDispatchFailure; it does not retry.
"""

from abc import ABC, abstractmethod

from models import NotificationPayload


class NotificationSink(ABC):
    """
    Base class for all delivery targets.
    """

    name: str = "sink"

    @abstractmethod
    async def push(self, payload: NotificationPayload) -> None:
        """
        Deliver one rendered payload.
        Raises SinkDispatchFailure when delivery did not happen.
        """
        pass

    async def close(self) -> None:
        return None
