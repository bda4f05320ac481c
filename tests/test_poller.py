from __future__ import annotations

import asyncio

import pytest

from fakes import FakeLedger, FakeRegistry, RecordingSink, item_address, make_source
from main import cycle_recorder
from models import NotificationPayload, PreviousObservation
from notification_log import read_last_cycles
from pipeline.detector import ThresholdStrategy
from pipeline.notifier import NotificationPipeline
from pipeline.poller import Poller
from pipeline.state import SourceStateStore
from sinks.base import NotificationSink


def _poller(sources, ledger, sinks, seed=None, **kwargs) -> tuple[Poller, FakeRegistry, SourceStateStore]:
    registry = FakeRegistry(sources)
    store = SourceStateStore(seed=seed)
    pipeline = NotificationPipeline(sinks, max_length=1000)
    poller = Poller(registry, ledger, store, ThresholdStrategy(threshold=1), pipeline, **kwargs)
    return poller, registry, store


@pytest.mark.asyncio
async def test_three_new_proposals_are_notified() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 8})
    sink = RecordingSink()
    poller, _, store = _poller([source], ledger, [sink], seed={source.id: PreviousObservation(item_count=5)})

    report = await poller.run_cycle()

    assert len(report.events) == 1
    assert [i.index for i in report.events[0].new_items] == [6, 7, 8]
    lines = sink.payloads[0].message.split("\n")
    assert len(lines) == 3
    for line, index in zip(lines, (6, 7, 8)):
        assert f"Proposal {index}" in line
    assert store.get(source.id).item_count == 8
    assert report.advanced == [source.id]


@pytest.mark.asyncio
async def test_unchanged_count_dispatches_nothing() -> None:
    source = make_source()
    sink = RecordingSink()
    poller, _, store = _poller(
        [source], FakeLedger({source.id: 5}), [sink], seed={source.id: PreviousObservation(item_count=5)}
    )

    report = await poller.run_cycle()

    assert report.events == []
    assert report.deliveries == {}
    assert sink.payloads == []
    assert store.get(source.id).item_count == 5


@pytest.mark.asyncio
async def test_one_failed_detail_still_notifies_the_rest() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 8})
    ledger.failing_details.add(item_address(source.id, 7))
    sink = RecordingSink()
    poller, _, store = _poller([source], ledger, [sink], seed={source.id: PreviousObservation(item_count=5)})

    report = await poller.run_cycle()

    assert [i.index for i in report.events[0].new_items] == [6, 7, 8]
    lines = sink.payloads[0].message.split("\n")
    assert "Proposal 6" in lines[0]
    assert "Proposal 7" not in lines[1]
    assert "/proposals/7" in lines[1]
    assert "Proposal 8" in lines[2]
    assert store.get(source.id).item_count == 8


@pytest.mark.asyncio
async def test_replay_without_advancing_is_identical() -> None:
    source = make_source()
    seed = {source.id: PreviousObservation(item_count=2)}

    first, _, _ = _poller([source], FakeLedger({source.id: 4}), [RecordingSink()], seed=seed)
    second, _, _ = _poller([source], FakeLedger({source.id: 4}), [RecordingSink()], seed=seed)

    assert (await first.run_cycle()).events == (await second.run_cycle()).events


@pytest.mark.asyncio
async def test_dispatch_failure_still_advances_state() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 8})
    sink = RecordingSink(fail=True)
    poller, _, store = _poller([source], ledger, [sink], seed={source.id: PreviousObservation(item_count=5)})

    report = await poller.run_cycle()
    assert report.deliveries == {source.id: {"recording": False}}
    assert store.get(source.id).item_count == 8

    sink.fail = False
    report = await poller.run_cycle()
    assert report.events == []
    assert sink.payloads == []


@pytest.mark.asyncio
async def test_read_failure_is_retried_next_cycle() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 7})
    ledger.failing_sources.add(source.id)
    sink = RecordingSink()
    poller, _, store = _poller([source], ledger, [sink], seed={source.id: PreviousObservation(item_count=5)})

    report = await poller.run_cycle()
    assert report.failures == {source.id: "rpc error"}
    assert store.get(source.id).item_count == 5

    ledger.failing_sources.clear()
    report = await poller.run_cycle()
    assert [i.index for i in report.events[0].new_items] == [6, 7]
    assert len(sink.payloads) == 1


@pytest.mark.asyncio
async def test_one_source_failure_does_not_touch_another() -> None:
    a, b = make_source(1), make_source(2)
    seed = {a.id: PreviousObservation(item_count=1), b.id: PreviousObservation(item_count=1)}

    healthy, _, _ = _poller([a, b], FakeLedger({a.id: 3, b.id: 2}), [RecordingSink()], seed=seed)
    baseline = await healthy.run_cycle()

    ledger = FakeLedger({a.id: 3, b.id: 2})
    ledger.failing_sources.add(a.id)
    poller, _, store = _poller([a, b], ledger, [RecordingSink()], seed=seed)
    report = await poller.run_cycle()

    assert list(report.failures) == [a.id]
    assert report.events == [e for e in baseline.events if e.source_id == b.id]
    assert report.advanced == [b.id]
    assert store.get(a.id).item_count == 1
    assert store.get(b.id).item_count == 2


@pytest.mark.asyncio
async def test_hung_source_times_out_alone() -> None:
    a, b = make_source(1), make_source(2)
    ledger = FakeLedger({a.id: 3, b.id: 2})
    ledger.hang_sources.add(a.id)
    sink = RecordingSink()
    seed = {a.id: PreviousObservation(item_count=1), b.id: PreviousObservation(item_count=1)}
    poller, _, store = _poller([a, b], ledger, [sink], seed=seed, source_timeout=0.05)

    report = await asyncio.wait_for(poller.run_cycle(), timeout=2)

    assert report.failures == {a.id: "timeout"}
    assert [e.source_id for e in report.events] == [b.id]
    assert store.get(a.id).item_count == 1


@pytest.mark.asyncio
async def test_registry_failure_skips_cycle() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 9})
    poller, registry, store = _poller(
        [source], ledger, [RecordingSink()], seed={source.id: PreviousObservation(item_count=5)}
    )
    registry.fail = True

    report = await poller.run_cycle()

    assert report.skipped
    assert report.sources == 0
    assert store.get(source.id).item_count == 5


@pytest.mark.asyncio
async def test_first_cycle_only_records_baseline() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 10})
    sink = RecordingSink()
    poller, _, store = _poller([source], ledger, [sink])

    report = await poller.run_cycle()
    assert report.events == []
    assert store.get(source.id).item_count == 10

    ledger.counts[source.id] = 11
    report = await poller.run_cycle()
    assert [i.index for i in report.events[0].new_items] == [11]


@pytest.mark.asyncio
async def test_shrinking_count_rebaselines_quietly() -> None:
    source = make_source()
    ledger = FakeLedger({source.id: 3})
    sink = RecordingSink()
    poller, _, store = _poller([source], ledger, [sink], seed={source.id: PreviousObservation(item_count=5)})

    await poller.run_cycle()
    assert store.get(source.id).item_count == 3

    ledger.counts[source.id] = 4
    report = await poller.run_cycle()
    assert [i.index for i in report.events[0].new_items] == [4]


@pytest.mark.asyncio
async def test_run_ticks_until_stopped() -> None:
    source = make_source()
    poller, registry, _ = _poller([source], FakeLedger({source.id: 1}), [RecordingSink()])

    task = asyncio.create_task(poller.run(0.02))
    await asyncio.sleep(0.15)
    poller.stop()
    await asyncio.wait_for(task, timeout=1)

    assert poller.cycles_run >= 2
    assert registry.calls == poller.cycles_run


class SlowSink(NotificationSink):
    name = "slow"

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.delivered: list[NotificationPayload] = []

    async def push(self, payload: NotificationPayload) -> None:
        self.started.set()
        await asyncio.sleep(0.1)
        self.delivered.append(payload)


@pytest.mark.asyncio
async def test_cancel_waits_for_in_flight_dispatch() -> None:
    source = make_source()
    sink = SlowSink()
    poller, _, store = _poller(
        [source], FakeLedger({source.id: 6}), [sink], seed={source.id: PreviousObservation(item_count=5)}
    )

    task = asyncio.create_task(poller.run(10))
    await asyncio.wait_for(sink.started.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(sink.delivered) == 1
    assert store.get(source.id).item_count == 6


async def _run_for(poller: Poller, interval: float, seconds: float) -> None:
    task = asyncio.create_task(poller.run(interval))
    await asyncio.sleep(seconds)
    poller.stop()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_ticks_stay_on_the_interval_grid() -> None:
    interval = 0.2
    poller, registry, _ = _poller([], FakeLedger(), [RecordingSink()])
    registry.delay = 0.6 * interval

    await _run_for(poller, interval, 1.05)

    starts = registry.call_times
    assert len(starts) >= 4
    t0 = starts[0]
    for k, start in enumerate(starts):
        # a fixed delay would push cycle k back by k * 0.12s
        assert abs((start - t0) - k * interval) < 0.05


@pytest.mark.asyncio
async def test_overrun_skips_missed_ticks() -> None:
    interval = 0.1
    poller, registry, _ = _poller([], FakeLedger(), [RecordingSink()])
    registry.delay = 1.5 * interval

    await _run_for(poller, interval, 0.75)

    starts = registry.call_times
    assert len(starts) >= 3
    for earlier, later in zip(starts, starts[1:]):
        assert abs((later - earlier) - 2 * interval) < 0.05


@pytest.mark.asyncio
async def test_cycle_stats_are_recorded(tmp_path) -> None:
    a, b = make_source(1), make_source(2)
    ledger = FakeLedger({a.id: 3, b.id: 2})
    ledger.failing_sources.add(a.id)
    path = str(tmp_path / "cycles.jsonl")
    seed = {a.id: PreviousObservation(item_count=1), b.id: PreviousObservation(item_count=1)}
    poller, _, _ = _poller([a, b], ledger, [RecordingSink()], seed=seed, on_cycle=cycle_recorder(path))

    await poller.run_cycle()

    [cycle] = read_last_cycles(path=path)
    assert cycle["cycle"] == 1
    assert cycle["sources"] == 2
    assert cycle["events"] == 1
    assert cycle["failures"] == {a.id: "rpc error"}
    assert cycle["skipped"] is False
    assert cycle["finished_at"] is not None


@pytest.mark.asyncio
async def test_broken_cycle_recorder_is_not_fatal() -> None:
    async def broken(report) -> None:
        raise OSError("disk full")

    source = make_source()
    poller, _, _ = _poller([source], FakeLedger({source.id: 1}), [RecordingSink()], on_cycle=broken)

    report = await poller.run_cycle()

    assert poller.last_report is report
