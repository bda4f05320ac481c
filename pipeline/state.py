"""
In-memory source state store: last processed observation per source id.
"""
import asyncio
import logging

from models import PreviousObservation

log = logging.getLogger(__name__)


class SourceStateStore:
    """
    Owns PreviousObservation for every source.

    Updates go through advance(), which takes a per-source lock and refuses a
    second update for the same source within one cycle. `seed` pre-populates
    observations (tests start from a known baseline this way).
    """

    def __init__(self, seed: dict[str, PreviousObservation] | None = None) -> None:
        self._observations: dict[str, PreviousObservation] = dict(seed or {})
        self._locks: dict[str, asyncio.Lock] = {}
        self._advanced_in: dict[str, int] = {}

    def _lock(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    def get(self, source_id: str) -> PreviousObservation | None:
        """Return a copy-safe (frozen) observation, or None if the source was never observed."""
        return self._observations.get(source_id)

    async def advance(
        self,
        source_id: str,
        observation: PreviousObservation,
        cycle: int,
        expected: PreviousObservation | None = None,
    ) -> bool:
        """
        Compare-and-swap: store `observation` if the current value still equals `expected`
        and the source has not been advanced in `cycle` yet. Returns True when stored.
        """
        async with self._lock(source_id):
            if self._advanced_in.get(source_id) == cycle:
                log.warning("State for %s already advanced in cycle %d; ignoring", source_id, cycle)
                return False
            current = self._observations.get(source_id)
            if current != expected:
                log.warning("State for %s changed underneath cycle %d; ignoring", source_id, cycle)
                return False
            self._observations[source_id] = observation
            self._advanced_in[source_id] = cycle
            return True

    def snapshot(self) -> dict[str, PreviousObservation]:
        return dict(self._observations)
