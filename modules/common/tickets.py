from __future__ import annotations

"""Helpers for working with ticket containers (channels or threads)."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Sequence

import discord

log = logging.getLogger("closeout.common.tickets")

ORDER_COLUMN = "#"
PROPOSAL_COLUMN = "Proposal"
LINK_COLUMN = "OO Link"


@dataclass(slots=True, frozen=True)
class TicketRef:
    """Identity of one ticket and the sheet key it is stored under."""

    channel_id: int
    name: str
    number: int | None
    key_column: str
    key_value: str
    proposal: str

    @property
    def label(self) -> str:
        return f"#{self.number}" if self.number is not None else self.proposal


def _normalize_datetime(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _prefix_pattern(prefixes: Sequence[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(p.lower()) for p in prefixes if p)
    return re.compile(rf"^(?:{alternatives})(\d+)", re.IGNORECASE)


def has_ticket_prefix(name: str | None, prefixes: Sequence[str]) -> bool:
    lowered = (name or "").lower()
    return any(lowered.startswith(prefix.lower()) for prefix in prefixes if prefix)


def parse_ticket_number(name: str | None, prefixes: Sequence[str]) -> int | None:
    """Extract the positive ticket number from ``ticket-0042`` style names."""

    if not prefixes:
        return None
    match = _prefix_pattern(prefixes).match((name or "").strip())
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


_THREAD_TYPES = frozenset(
    {
        discord.ChannelType.public_thread,
        discord.ChannelType.private_thread,
        discord.ChannelType.news_thread,
    }
)


def is_thread(channel: Any) -> bool:
    return getattr(channel, "type", None) in _THREAD_TYPES


def ticket_ref(channel: Any, prefixes: Sequence[str], *, link: str = "") -> TicketRef | None:
    """Build the sheet identity for ``channel``.

    Numbered containers are keyed by their number. Threads without a number
    are keyed by the resolved external link and labelled with the thread name.
    """

    name = getattr(channel, "name", "") or ""
    channel_id = int(getattr(channel, "id", 0) or 0)
    number = parse_ticket_number(name, prefixes)
    if number is not None:
        return TicketRef(
            channel_id=channel_id,
            name=name,
            number=number,
            key_column=ORDER_COLUMN,
            key_value=str(number),
            proposal=str(number),
        )
    if is_thread(channel) and link:
        return TicketRef(
            channel_id=channel_id,
            name=name,
            number=None,
            key_column=LINK_COLUMN,
            key_value=link,
            proposal=name,
        )
    return None


def created_at(channel: Any) -> datetime:
    return _normalize_datetime(getattr(channel, "created_at", None))


def _iter_containers(guild: Any) -> Iterable[Any]:
    seen: set[int] = set()
    for channel in list(getattr(guild, "text_channels", []) or []):
        seen.add(getattr(channel, "id", 0))
        yield channel
    for thread in list(getattr(guild, "threads", []) or []):
        if getattr(thread, "id", 0) in seen:
            continue
        yield thread


def eligible_ticket_channels(
    guild: Any,
    *,
    prefixes: Sequence[str],
    min_age: timedelta,
    now: datetime | None = None,
) -> list[Any]:
    """Return ticket containers older than ``min_age``, oldest first."""

    reference = now or datetime.now(timezone.utc)
    results = []
    for channel in _iter_containers(guild):
        if getattr(channel, "archived", False):
            continue
        if not has_ticket_prefix(getattr(channel, "name", ""), prefixes):
            continue
        if reference - created_at(channel) < min_age:
            continue
        results.append(channel)
    results.sort(key=created_at)
    return results


__all__ = [
    "LINK_COLUMN",
    "ORDER_COLUMN",
    "PROPOSAL_COLUMN",
    "TicketRef",
    "created_at",
    "eligible_ticket_channels",
    "has_ticket_prefix",
    "is_thread",
    "parse_ticket_number",
    "ticket_ref",
]
