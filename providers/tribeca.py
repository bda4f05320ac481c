"""
Tribeca registry adapter: fetches governor-metas.json and normalizes it to Source records.
"""

import asyncio
import json
import logging

import aiohttp
from pydantic import BaseModel

from errors import RegistryUnavailable
from models import Source
from providers.base import RegistryAdapter

log = logging.getLogger(__name__)


class GovernorMeta(BaseModel):
    """One entry of the registry build. Unused fields are ignored."""
    address: str
    name: str
    slug: str


class TribecaRegistryAdapter(RegistryAdapter):
    """Fetch and normalize the Tribeca governor catalog."""

    def __init__(self, session: aiohttp.ClientSession, url: str) -> None:
        self._session = session
        self._url = url
        # (metas, last_modified, etag) for conditional GET
        self._cache: tuple[list[GovernorMeta], str, str] | None = None

    async def fetch_catalog(self) -> list[GovernorMeta]:
        """GET the catalog; use If-Modified-Since / If-None-Match and return cached metas on 304."""
        headers: dict[str, str] = {}
        if self._cache is not None:
            _, last_modified, etag = self._cache
            if last_modified:
                headers["If-Modified-Since"] = last_modified
            if etag:
                headers["If-None-Match"] = etag
        async with self._session.get(self._url, headers=headers or None) as resp:
            if resp.status == 304 and self._cache is not None:
                return self._cache[0]
            resp.raise_for_status()
            last_modified = resp.headers.get("Last-Modified") or ""
            etag = resp.headers.get("ETag") or ""
            # raw.githubusercontent.com serves JSON as text/plain
            data = json.loads(await resp.text())
        if not isinstance(data, list):
            raise TypeError(f"expected a list of governors, got {type(data).__name__}")
        metas = [GovernorMeta(**d) for d in data]
        self._cache = (metas, last_modified, etag)
        return metas

    async def list_sources(self) -> list[Source]:
        try:
            metas = await self.fetch_catalog()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, TypeError) as exc:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and pydantic ValidationError
            raise RegistryUnavailable(f"{self._url}: {str(exc) or type(exc).__name__}") from exc
        log.info("Registry lists %d source(s)", len(metas))
        return [Source(address=m.address, name=m.name, slug=m.slug) for m in metas]
