"""
Abstract boundaries to the outside world: the source catalog and the governance ledger.
Concrete clients translate their transport errors into the errors.py taxonomy.
"""

from abc import ABC, abstractmethod

from models import ProposalDetail, Source, SourceSnapshot


class RegistryAdapter(ABC):
    """
    Lists the sources to monitor.
    """

    @abstractmethod
    async def list_sources(self) -> list[Source]:
        """
        Return the current ordered list of sources.
        Raises RegistryUnavailable on network or parse error.
        """
        pass


class LedgerClient(ABC):
    """
    Read-only view of on-chain governance state.
    """

    @abstractmethod
    async def read_snapshot(self, source: Source) -> SourceSnapshot:
        """Current item count for a source. Raises SourceReadFailure."""
        pass

    @abstractmethod
    async def find_item_address(self, source: Source, index: int) -> str:
        """Deterministic address of the item at a 1-based index. Raises SourceReadFailure."""
        pass

    @abstractmethod
    async def fetch_detail(self, address: str) -> ProposalDetail:
        """Detail record of one item. Raises DetailUnavailable."""
        pass

    async def close(self) -> None:
        """Release transport resources. Optional."""
        return None
