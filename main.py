"""
Governance proposal monitor: poll the registry and ledger, detect new proposals, notify sinks.
"""
import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable

import aiohttp

from config import MonitorConfig, SinkConfig, load_config
from notification_log import append_cycle
from pipeline.detector import build_strategy
from pipeline.notifier import NotificationPipeline
from pipeline.poller import CycleReport, Poller
from pipeline.state import SourceStateStore
from providers.ledger import HttpLedgerClient
from providers.tribeca import TribecaRegistryAdapter
from sinks.base import NotificationSink
from sinks.console import ConsoleSink
from sinks.log import LogSink
from sinks.twitter import TwitterSink

log = logging.getLogger(__name__)


def get_sink(sink_cfg: SinkConfig, session: aiohttp.ClientSession, cfg: MonitorConfig) -> NotificationSink:
    """Return the sink for the given config entry."""
    if sink_cfg.type == "console":
        sink = ConsoleSink()
    elif sink_cfg.type == "twitter":
        sink = TwitterSink(session)
    elif sink_cfg.type == "log":
        sink = LogSink(cfg.notification_log_path)
    else:
        raise ValueError(f"Unknown sink: {sink_cfg.type}")
    if sink_cfg.name:
        sink.name = sink_cfg.name
    return sink


def cycle_recorder(path: str) -> Callable[[CycleReport], Awaitable[None]]:
    """Append each cycle summary to the JSONL cycle log read by the status server."""
    async def record(report: CycleReport) -> None:
        await asyncio.to_thread(append_cycle, report.summary(), path)
    return record


def build_poller(cfg: MonitorConfig, session: aiohttp.ClientSession) -> Poller:
    sinks = [get_sink(s, session, cfg) for s in cfg.sinks]
    pipeline = NotificationPipeline(
        sinks,
        max_length=cfg.max_message_length,
        url_template=cfg.proposal_url_template,
    )
    return Poller(
        registry=TribecaRegistryAdapter(session, cfg.registry_url),
        ledger=HttpLedgerClient(session, cfg.ledger_url),
        store=SourceStateStore(),
        strategy=build_strategy(cfg.diff.strategy, cfg.diff.threshold),
        pipeline=pipeline,
        interval=cfg.poll_interval,
        max_concurrent_sources=cfg.max_concurrent_sources,
        max_inflight_details=cfg.max_inflight_details,
        source_timeout=cfg.source_timeout,
        on_cycle=cycle_recorder(cfg.cycle_log_path),
    )


async def main() -> None:
    cfg = load_config()
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=cfg.source_timeout),
        headers={"User-Agent": "govwatch/1.0"},
    ) as session:
        poller = build_poller(cfg, session)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, poller.stop)
        await poller.run(cfg.poll_interval)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
