"""Market-feed and ticket-creation events keyed for correlation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from modules.closure.links import find_link, parse_event_reference

_PUNCT_RE = re.compile(r"[^\w\s]")
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)


@dataclass(frozen=True)
class MarketEvent:
    key: str
    title: str
    link: str
    message_id: int
    channel_id: int


@dataclass
class FallbackQueueItem:
    key: str
    title: str
    link: str
    message_id: int
    channel_id: int
    enqueued_at: float
    attempts: int = 0

    @classmethod
    def from_event(cls, event: MarketEvent, enqueued_at: float) -> "FallbackQueueItem":
        return cls(
            key=event.key,
            title=event.title,
            link=event.link,
            message_id=event.message_id,
            channel_id=event.channel_id,
            enqueued_at=enqueued_at,
        )


def normalize_title(title: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""

    text = _PUNCT_RE.sub(" ", (title or "").lower())
    return " ".join(text.split())


def composite_key(tx_hash: Optional[str], event_index: Optional[str], title: Optional[str]) -> Optional[str]:
    tx = (tx_hash or "").strip().lower()
    index = (event_index or "").strip()
    if tx and index:
        return f"{tx}:{index}"
    normalized = normalize_title(title)
    if normalized:
        return f"title:{normalized}"
    return None


def _first_line(text: Optional[str]) -> str:
    for line in (text or "").splitlines():
        cleaned = _URL_RE.sub("", line).strip()
        if cleaned:
            return cleaned
    return ""


def _event_title(message: Any) -> str:
    for embed in getattr(message, "embeds", None) or ():
        title = (getattr(embed, "title", None) or "").strip()
        if title:
            return title
        described = _first_line(getattr(embed, "description", None))
        if described:
            return described
    return _first_line(getattr(message, "content", None))


def _event_from_message(message: Any) -> Optional[MarketEvent]:
    link = find_link(getattr(message, "content", ""), getattr(message, "embeds", ()))
    title = _event_title(message)
    tx_hash, event_index = parse_event_reference(link)
    key = composite_key(tx_hash, event_index, title)
    if key is None:
        return None
    channel = getattr(message, "channel", None)
    return MarketEvent(
        key=key,
        title=title,
        link=link,
        message_id=int(getattr(message, "id", 0) or 0),
        channel_id=int(getattr(channel, "id", 0) or 0),
    )


def market_event_from_message(message: Any) -> Optional[MarketEvent]:
    """Event for a market-feed post; ``None`` when it carries no key."""

    return _event_from_message(message)


def creation_event_from_message(message: Any, ticket_tool_id: Optional[int]) -> Optional[MarketEvent]:
    """Event for a ticket-tool post announcing a newly opened ticket."""

    if ticket_tool_id is None:
        return None
    author = getattr(message, "author", None)
    if getattr(author, "id", None) != ticket_tool_id:
        return None
    return _event_from_message(message)


__all__ = [
    "FallbackQueueItem",
    "MarketEvent",
    "composite_key",
    "creation_event_from_message",
    "market_event_from_message",
    "normalize_title",
]
