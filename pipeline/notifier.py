"""
Notification pipeline: render each DiffEvent once and fan the payload out to every sink.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from config import DEFAULT_PROPOSAL_URL
from errors import SinkDispatchFailure
from models import DiffEvent, NotificationPayload
from pipeline.formatter import render
from sinks.base import NotificationSink

log = logging.getLogger(__name__)

DEDUPE_WINDOW = 1024


class NotificationPipeline:
    """
    Sink failures are logged per sink and never raised: delivery outcome does not
    decide whether a source's state advances. Dispatch is not retried.
    """

    def __init__(
        self,
        sinks: list[NotificationSink],
        max_length: int = 250,
        url_template: str = DEFAULT_PROPOSAL_URL,
        dedupe_window: int = DEDUPE_WINDOW,
    ) -> None:
        self._sinks = list(sinks)
        self._max_length = max_length
        self._url_template = url_template
        self._dedupe_window = dedupe_window
        self._sent: OrderedDict[str, None] = OrderedDict()

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    def render(self, event: DiffEvent) -> NotificationPayload | None:
        return render(event, self._max_length, self._url_template)

    def _seen(self, fingerprint: str) -> bool:
        if fingerprint in self._sent:
            self._sent.move_to_end(fingerprint)
            return True
        return False

    def _remember(self, fingerprint: str) -> None:
        self._sent[fingerprint] = None
        while len(self._sent) > self._dedupe_window:
            self._sent.popitem(last=False)

    async def _push(self, sink: NotificationSink, payload: NotificationPayload) -> bool:
        try:
            await sink.push(payload)
        except SinkDispatchFailure as exc:
            log.error("Sink %s failed to deliver for %s: %s", sink.name, payload.source_name, exc.reason)
            return False
        except Exception:
            log.exception("Sink %s raised while delivering for %s", sink.name, payload.source_name)
            return False
        return True

    async def dispatch(self, payload: NotificationPayload) -> dict[str, bool]:
        """Push to all sinks concurrently. Returns sink name -> delivered."""
        results = await asyncio.gather(*[self._push(sink, payload) for sink in self._sinks])
        return {sink.name: ok for sink, ok in zip(self._sinks, results)}

    async def notify(self, event: DiffEvent) -> dict[str, bool] | None:
        """Render and dispatch one event. None when nothing was sent (duplicate or empty render)."""
        fingerprint = event.fingerprint()
        if self._seen(fingerprint):
            log.info("Dropping duplicate notification for %s", event.source.name)
            return None
        payload = self.render(event)
        if payload is None:
            return None
        self._remember(fingerprint)
        return await self.dispatch(payload)
