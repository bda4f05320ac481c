"""
HTTP ledger client. Talks to a read gateway that fronts the governance program:

    GET {base}/governors/{address}                  -> {"proposalCount": int, ...}
    GET {base}/governors/{address}/proposals/{idx}  -> {"address": str}
    GET {base}/proposals/{address}/meta             -> {"title": str, "descriptionLink": str}

Address derivation and account decoding happen behind the gateway.
"""

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from errors import DetailUnavailable, SourceReadFailure
from models import ProposalDetail, Source, SourceSnapshot
from providers.base import LedgerClient

log = logging.getLogger(__name__)


class HttpLedgerClient(LedgerClient):

    def __init__(self, session: aiohttp.ClientSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")

    async def _get_json(self, path: str) -> Any:
        async with self._session.get(f"{self._base_url}{path}") as resp:
            if resp.status == 404:
                return None
            resp.raise_for_status()
            return await resp.json(content_type=None)

    async def read_snapshot(self, source: Source) -> SourceSnapshot:
        try:
            data = await self._get_json(f"/governors/{source.id}")
            if data is None:
                raise SourceReadFailure(source.id, "governor account not found")
            count = int(data["proposalCount"])
            snapshot = SourceSnapshot(source_id=source.id, item_count=count, raw_state=data)
        except SourceReadFailure:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError, ValidationError) as exc:
            raise SourceReadFailure(source.id, str(exc) or type(exc).__name__) from exc
        log.info("Monitoring data for: %s. Current proposal count: %d", source.name, count)
        return snapshot

    async def find_item_address(self, source: Source, index: int) -> str:
        try:
            data = await self._get_json(f"/governors/{source.id}/proposals/{index}")
            if data is None:
                raise SourceReadFailure(source.id, f"no proposal address for index {index}")
            return str(data["address"])
        except SourceReadFailure:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError) as exc:
            raise SourceReadFailure(source.id, str(exc) or type(exc).__name__) from exc

    async def fetch_detail(self, address: str) -> ProposalDetail:
        try:
            data = await self._get_json(f"/proposals/{address}/meta")
            if data is None:
                raise DetailUnavailable(address, "proposal meta not initialized")
            return ProposalDetail(**data)
        except DetailUnavailable:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, TypeError, ValueError) as exc:
            # pydantic ValidationError is a ValueError
            raise DetailUnavailable(address, str(exc) or type(exc).__name__) from exc
