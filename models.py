from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Source(BaseModel):
    """
    One monitored governance body, as listed by the registry.
    Re-fetched every cycle; the registry is authoritative.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="address")
    name: str
    slug: str


class SourceSnapshot(BaseModel):
    """Observable state of one source at one poll instant."""
    model_config = ConfigDict(frozen=True)

    source_id: str
    item_count: int = Field(ge=0)
    raw_state: dict = {}


class ProposalDetail(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    description_link: str = Field("", alias="descriptionLink")


class DetailResult(BaseModel):
    """
    Outcome of one detail fetch: either `detail` or `error` is set.
    A failed fetch keeps its slot so the index order is preserved.
    """
    model_config = ConfigDict(frozen=True)

    address: str
    detail: ProposalDetail | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.detail is not None


class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    index: int = Field(ge=1)
    address: str
    detail: ProposalDetail | None = None


class DiffKind(str, Enum):
    THRESHOLD = "threshold"
    SET_ADD = "set_add"


class DiffEvent(BaseModel):
    """Positive delta for one source in one cycle."""
    model_config = ConfigDict(frozen=True)

    source: Source
    kind: DiffKind
    previous: int
    current: int
    new_items: tuple[Item, ...] = ()

    @property
    def source_id(self) -> str:
        return self.source.id

    def fingerprint(self) -> str:
        keys = ",".join(item.address for item in self.new_items)
        return f"{self.source_id}:{self.kind.value}:{keys}"


class NotificationPayload(BaseModel):
    """Rendered message plus addressing metadata. Never persisted by the pipeline itself."""
    source_id: str
    source_name: str
    message: str
    item_indices: list[int] = []
    truncated: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PreviousObservation(BaseModel):
    """
    Last successfully processed state of a source.
    `item_keys` is only tracked by set-addition monitors.
    """
    model_config = ConfigDict(frozen=True)

    item_count: int = Field(0, ge=0)
    item_keys: tuple[str, ...] = ()
