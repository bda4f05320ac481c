"""
Console sink: print each notification.
"""
from models import NotificationPayload
from sinks.base import NotificationSink


def format_payload(payload: NotificationPayload) -> str:
    """[timestamp] DAO: ... followed by the message lines."""
    ts = payload.created_at.strftime("%Y-%m-%d %H:%M:%S")
    return f"[{ts}] DAO: {payload.source_name}\n{payload.message}"


class ConsoleSink(NotificationSink):
    name = "console"

    async def push(self, payload: NotificationPayload) -> None:
        print(format_payload(payload), flush=True)
