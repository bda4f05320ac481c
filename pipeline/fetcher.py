"""
Detail fetcher: resolves addresses for an index range and fetches their detail records.
"""
import asyncio
import logging

from errors import DetailUnavailable
from models import DetailResult, Item, Source
from providers.base import LedgerClient

log = logging.getLogger(__name__)


class DetailFetcher:
    """
    Fans out ledger reads for one source, bounded by `max_inflight`, and joins
    them in index order. A failed detail read becomes a DetailResult with `error`;
    it never fails the batch. Address resolution failures do propagate
    (SourceReadFailure), since without the address the item does not exist.
    """

    def __init__(self, ledger: LedgerClient, max_inflight: int = 16) -> None:
        self._ledger = ledger
        self._sem = asyncio.Semaphore(max_inflight)

    async def _bounded(self, coro):
        async with self._sem:
            return await coro

    async def resolve_new_item_addresses(self, source: Source, from_index: int, to_index: int) -> list[str]:
        """Addresses for indices from_index..to_index inclusive, in index order."""
        if to_index < from_index:
            return []
        log.info("Fetching proposals for indices %d..%d of %s", from_index, to_index, source.name)
        return list(
            await asyncio.gather(
                *[self._bounded(self._ledger.find_item_address(source, i)) for i in range(from_index, to_index + 1)]
            )
        )

    async def fetch_detail(self, address: str) -> DetailResult:
        try:
            detail = await self._bounded(self._ledger.fetch_detail(address))
        except DetailUnavailable as exc:
            return DetailResult(address=address, error=exc.reason)
        return DetailResult(address=address, detail=detail)

    async def fetch_details(self, addresses: list[str]) -> list[DetailResult]:
        return list(await asyncio.gather(*[self.fetch_detail(a) for a in addresses]))

    async def fetch_items(self, source: Source, indexed: list[tuple[int, str]]) -> list[Item]:
        """Build Items for (index, address) pairs, keeping order; failed details yield detail=None."""
        results = await self.fetch_details([address for _, address in indexed])
        items: list[Item] = []
        for (index, address), result in zip(indexed, results):
            if not result.ok:
                log.warning(
                    "Failed to fetch proposal with key: %s from DAO: %s (%s)", address, source.name, result.error
                )
            items.append(Item(source_id=source.id, index=index, address=address, detail=result.detail))
        return items

    async def fetch_range(self, source: Source, from_index: int, to_index: int) -> list[Item]:
        addresses = await self.resolve_new_item_addresses(source, from_index, to_index)
        return await self.fetch_items(source, list(zip(range(from_index, to_index + 1), addresses)))
