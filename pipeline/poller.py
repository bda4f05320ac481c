"""
Poller: fixed-rate scheduling loop that runs one poll-diff-notify cycle per tick.
"""
from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from errors import RegistryUnavailable, SourceReadFailure
from models import DiffEvent, PreviousObservation, Source
from pipeline.detector import Evaluation, SetAddStrategy, ThresholdStrategy
from pipeline.fetcher import DetailFetcher
from pipeline.notifier import NotificationPipeline
from pipeline.state import SourceStateStore
from providers.base import LedgerClient, RegistryAdapter

log = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """What one cycle did."""
    cycle: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    skipped: bool = False
    sources: int = 0
    events: list[DiffEvent] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    deliveries: dict[str, dict[str, bool]] = field(default_factory=dict)
    advanced: list[str] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "cycle": self.cycle,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "sources": self.sources,
            "events": len(self.events),
            "failures": dict(self.failures),
            "advanced": len(self.advanced),
        }


class Poller:
    """
    Runs cycles at t0 + k*interval. Within a cycle, sources are processed concurrently
    (at most `max_concurrent_sources` at once) and every failure stays inside its source.
    Only the read/fetch/diff step of a source is under `source_timeout`; dispatch is
    never cut short. stop() lets the in-flight cycle finish.
    """

    def __init__(
        self,
        registry: RegistryAdapter,
        ledger: LedgerClient,
        store: SourceStateStore,
        strategy: ThresholdStrategy | SetAddStrategy,
        pipeline: NotificationPipeline,
        *,
        interval: float = 5.0,
        max_concurrent_sources: int = 8,
        max_inflight_details: int = 16,
        source_timeout: float = 30.0,
        on_cycle: Callable[[CycleReport], Awaitable[None]] | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._store = store
        self._strategy = strategy
        self._pipeline = pipeline
        self._interval = interval
        self._fetcher = DetailFetcher(ledger, max_inflight_details)
        self._source_sem = asyncio.Semaphore(max_concurrent_sources)
        self._source_timeout = source_timeout
        self._on_cycle = on_cycle
        self._cycle = 0
        self._stopping = asyncio.Event()
        self._in_flight: asyncio.Task | None = None
        self.last_report: CycleReport | None = None

    @property
    def cycles_run(self) -> int:
        return self._cycle

    async def _evaluate(self, source: Source, previous: PreviousObservation | None) -> Evaluation:
        snapshot = await self._ledger.read_snapshot(source)
        return await self._strategy.evaluate(source, snapshot, previous, self._fetcher)

    async def process_source(self, source: Source, report: CycleReport) -> None:
        """snapshot -> diff -> render -> dispatch -> advance, strictly in that order."""
        async with self._source_sem:
            previous = self._store.get(source.id)
            try:
                evaluation = await asyncio.wait_for(self._evaluate(source, previous), self._source_timeout)
            except asyncio.TimeoutError:
                log.warning("Timed out reading %s after %.1fs; retrying next cycle", source.name, self._source_timeout)
                report.failures[source.id] = "timeout"
                return
            except SourceReadFailure as exc:
                log.warning("Could not read %s: %s; retrying next cycle", source.name, exc.reason)
                report.failures[source.id] = exc.reason
                return
            except Exception as exc:
                log.exception("Unexpected error while reading %s", source.name)
                report.failures[source.id] = repr(exc)
                return

            if evaluation.event is not None:
                report.events.append(evaluation.event)
                deliveries = await self._pipeline.notify(evaluation.event)
                if deliveries is not None:
                    report.deliveries[source.id] = deliveries

            if evaluation.observation is not None:
                if await self._store.advance(source.id, evaluation.observation, report.cycle, expected=previous):
                    report.advanced.append(source.id)

    async def run_cycle(self) -> CycleReport:
        """One full pass over all sources listed by the registry."""
        self._cycle += 1
        report = CycleReport(cycle=self._cycle)
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            sources = await self._registry.list_sources()
        except RegistryUnavailable as exc:
            log.warning("Registry unavailable, skipping cycle %d: %s", report.cycle, exc)
            report.skipped = True
            sources = []
        report.sources = len(sources)
        await asyncio.gather(*[self.process_source(s, report) for s in sources])
        report.finished_at = datetime.now(timezone.utc)
        log.debug(
            "Cycle %d done in %.2fs: %d source(s), %d event(s), %d failure(s)",
            report.cycle, loop.time() - started, report.sources, len(report.events), len(report.failures),
        )
        self.last_report = report
        if self._on_cycle is not None:
            try:
                await self._on_cycle(report)
            except Exception:
                log.exception("Could not record cycle %d", report.cycle)
        return report

    async def _run_one(self) -> None:
        self._in_flight = asyncio.create_task(self.run_cycle())
        try:
            # shield: cancelling run() must not abort a cycle that is mid-dispatch
            await asyncio.shield(self._in_flight)
        except asyncio.CancelledError:
            await self._drain()
            raise
        except Exception:
            log.exception("Cycle %d crashed", self._cycle)
        finally:
            if self._in_flight is not None and self._in_flight.done():
                self._in_flight = None

    async def _drain(self) -> None:
        task = self._in_flight
        if task is not None and not task.done():
            log.info("Waiting for in-flight cycle %d to finish", self._cycle)
            await asyncio.gather(task, return_exceptions=True)

    async def run(self, interval: float | None = None) -> None:
        """Tick at a fixed rate until stop() is called or the task is cancelled."""
        interval = interval if interval is not None else self._interval
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        tick = 0
        log.info("Poller started, interval %.1fs", interval)
        while not self._stopping.is_set():
            await self._run_one()
            now = loop.time()
            next_tick = math.floor((now - t0) / interval) + 1
            if next_tick > tick + 1:
                log.warning("Cycle overran its slot; skipping %d tick(s)", next_tick - tick - 1)
            tick = next_tick
            delay = t0 + tick * interval - now
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=max(delay, 0))
            except asyncio.TimeoutError:
                pass
        log.info("Poller stopped after %d cycle(s)", self._cycle)

    def stop(self) -> None:
        """Stop scheduling new ticks. The current cycle, if any, runs to completion."""
        self._stopping.set()
