"""
Log sink: append every notification to the JSONL notification log.
"""
import asyncio

from errors import SinkDispatchFailure
from models import NotificationPayload
from notification_log import append_notifications
from sinks.base import NotificationSink


class LogSink(NotificationSink):
    name = "log"

    def __init__(self, path: str) -> None:
        self._path = path

    async def push(self, payload: NotificationPayload) -> None:
        try:
            await asyncio.to_thread(append_notifications, [payload], self._path)
        except OSError as exc:
            raise SinkDispatchFailure(self.name, str(exc)) from exc
