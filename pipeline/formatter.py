"""
Render a DiffEvent as a notification message.
"""
from __future__ import annotations

import logging
import re

from config import DEFAULT_PROPOSAL_URL
from models import DiffEvent, Item, NotificationPayload

log = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MISSING_TITLE = "(title unavailable)"

_WS = re.compile(r"\s+")


def format_item(item: Item, name: str, slug: str, url_template: str = DEFAULT_PROPOSAL_URL) -> str:
    """One line per proposal: 📜 New proposal for <dao>: <link> - <title>"""
    url = url_template.format(slug=slug, index=item.index)
    title = item.detail.title if item.detail is not None else MISSING_TITLE
    title = _WS.sub(" ", title).strip()[:MAX_TITLE_LENGTH] or MISSING_TITLE
    return _WS.sub(" ", f"📜 New proposal for {name}: {url} - {title}").strip()


def render(
    event: DiffEvent,
    max_length: int = 250,
    url_template: str = DEFAULT_PROPOSAL_URL,
) -> NotificationPayload | None:
    """
    Join one line per new item and cut the whole message at `max_length` characters.
    The cut may land inside an item. Returns None (with a warning) if nothing is left.
    """
    source = event.source
    lines = [format_item(item, source.name, source.slug, url_template) for item in event.new_items]
    full = "\n".join(lines)
    message = full[:max_length]
    if not message.strip():
        log.warning(
            "Could not generate message for: %s (%s) from indices %d to %d",
            source.name, source.id, event.previous, event.current,
        )
        return None
    return NotificationPayload(
        source_id=source.id,
        source_name=source.name,
        message=message,
        item_indices=[item.index for item in event.new_items],
        truncated=len(full) > max_length,
    )


if __name__ == "__main__":
    from models import DiffKind, ProposalDetail, Source

    dao = Source(address="GovFake111", name="Saber", slug="sbr")
    e = DiffEvent(
        source=dao,
        kind=DiffKind.THRESHOLD,
        previous=5,
        current=6,
        new_items=(Item(source_id=dao.id, index=6, address="Prop6", detail=ProposalDetail(title="Raise quorum")),),
    )
    print(render(e).message)
