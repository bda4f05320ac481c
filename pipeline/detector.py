"""
Change detection: compares the last processed observation of a source with a fresh
snapshot and produces at most one DiffEvent plus the baseline to store afterwards.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from models import DiffEvent, DiffKind, PreviousObservation, Source, SourceSnapshot
from pipeline.fetcher import DetailFetcher

log = logging.getLogger(__name__)

T = TypeVar("T")


def threshold_diff(previous: int, current: int, threshold: int = 1) -> int | None:
    """Number of new items if the increase reaches `threshold`, else None. Shrinkage is never an event."""
    delta = current - previous
    if delta <= 0 or delta < threshold:
        return None
    return delta


def set_add_diff(
    previous: Iterable[Hashable],
    current: Sequence[T],
    key: Callable[[T], Hashable] = lambda x: x,
) -> list[T]:
    """Elements of `current` whose key is not in `previous`, in the order of `current`."""
    seen = set(previous)
    return [x for x in current if key(x) not in seen]


@dataclass(frozen=True)
class Evaluation:
    """
    event: what to notify, or None.
    observation: the baseline to store once the cycle completes, or None to leave it untouched.
    """
    event: DiffEvent | None = None
    observation: PreviousObservation | None = None


class ThresholdStrategy:
    """Proposal-count monitor: fires when the count grows by at least `threshold`."""

    kind = DiffKind.THRESHOLD

    def __init__(self, threshold: int = 1) -> None:
        self.threshold = threshold

    async def evaluate(
        self,
        source: Source,
        snapshot: SourceSnapshot,
        previous: PreviousObservation | None,
        fetcher: DetailFetcher,
    ) -> Evaluation:
        current = snapshot.item_count
        if previous is None:
            return Evaluation(observation=PreviousObservation(item_count=current))
        if current < previous.item_count:
            log.warning(
                "Proposal count for %s decreased from %d to %d; re-synchronizing baseline",
                source.name, previous.item_count, current,
            )
            return Evaluation(observation=PreviousObservation(item_count=current))
        if threshold_diff(previous.item_count, current, self.threshold) is None:
            return Evaluation()
        log.info(
            "Spotted a proposal count change for %s. Proposal count: %d increased to %d",
            source.name, previous.item_count, current,
        )
        items = await fetcher.fetch_range(source, previous.item_count + 1, current)
        event = DiffEvent(
            source=source,
            kind=self.kind,
            previous=previous.item_count,
            current=current,
            new_items=tuple(items),
        )
        return Evaluation(event=event, observation=PreviousObservation(item_count=current))


class SetAddStrategy:
    """Proposal-set monitor: fires for every item address not seen before."""

    kind = DiffKind.SET_ADD

    async def evaluate(
        self,
        source: Source,
        snapshot: SourceSnapshot,
        previous: PreviousObservation | None,
        fetcher: DetailFetcher,
    ) -> Evaluation:
        addresses = await fetcher.resolve_new_item_addresses(source, 1, snapshot.item_count)
        observation = PreviousObservation(item_count=snapshot.item_count, item_keys=tuple(addresses))
        if previous is None:
            return Evaluation(observation=observation)
        indexed = list(enumerate(addresses, start=1))
        added = set_add_diff(previous.item_keys, indexed, key=lambda pair: pair[1])
        if not added:
            if observation == previous:
                return Evaluation()
            return Evaluation(observation=observation)
        log.info("Spotted %d new proposal(s) for %s", len(added), source.name)
        items = await fetcher.fetch_items(source, added)
        event = DiffEvent(
            source=source,
            kind=self.kind,
            previous=len(previous.item_keys),
            current=len(addresses),
            new_items=tuple(items),
        )
        return Evaluation(event=event, observation=observation)


def build_strategy(strategy: str, threshold: int = 1) -> ThresholdStrategy | SetAddStrategy:
    if strategy == "threshold":
        return ThresholdStrategy(threshold)
    if strategy == "set_add":
        return SetAddStrategy()
    raise ValueError(f"Unknown diff strategy: {strategy}")
