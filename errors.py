"""
Failure types, one per containment scope: item, source, cycle, sink.
None of them is fatal to the process.
"""


class MonitorError(Exception):
    """Base class for all monitor pipeline failures."""


class RegistryUnavailable(MonitorError):
    """Source catalog could not be fetched or parsed. The whole cycle is skipped."""


class SourceReadFailure(MonitorError):
    """Ledger state of one source could not be read. That source is retried next cycle."""

    def __init__(self, source_id: str, reason: str) -> None:
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id
        self.reason = reason


class DetailUnavailable(MonitorError):
    """One item's detail record is missing or unreadable."""

    def __init__(self, address: str, reason: str = "not found") -> None:
        super().__init__(f"{address}: {reason}")
        self.address = address
        self.reason = reason


class SinkDispatchFailure(MonitorError):
    """A sink rejected or failed to deliver a payload. Logged and dropped."""

    def __init__(self, sink: str, reason: str) -> None:
        super().__init__(f"{sink}: {reason}")
        self.sink = sink
        self.reason = reason
