"""Locate recognised external reference links in message text and embeds."""

from __future__ import annotations

import re
from typing import Any, Iterable
from urllib.parse import parse_qs, urlsplit

RECOGNISED_DOMAINS = ("oracle.uma.xyz", "snapshot.org", "polymarket.com")

_LINK_RE = re.compile(
    r"https?://(?:www\.)?(?:"
    + "|".join(re.escape(domain) for domain in RECOGNISED_DOMAINS)
    + r")[^\s<>()\[\]]*",
    re.IGNORECASE,
)


def _clean(url: str) -> str:
    # A single trailing period is sentence punctuation; ".." can be part of a path.
    if url.endswith(".") and not url.endswith(".."):
        return url[:-1]
    return url


def match_link(text: str | None) -> str:
    if not text:
        return ""
    match = _LINK_RE.search(text)
    return _clean(match.group(0)) if match else ""


def _embed_candidates(embed: Any) -> Iterable[str | None]:
    yield getattr(embed, "url", None)
    yield getattr(embed, "description", None)
    for embed_field in getattr(embed, "fields", None) or ():
        yield getattr(embed_field, "value", None)


def find_link(content: str | None, embeds: Iterable[Any] = ()) -> str:
    """Return the first recognised link in ``embeds`` then ``content``, or ``""``."""

    for embed in embeds or ():
        for candidate in _embed_candidates(embed):
            found = match_link(candidate)
            if found:
                return found
    return match_link(content)


def find_link_in_messages(messages: Iterable[Any]) -> str:
    for message in messages:
        found = find_link(getattr(message, "content", ""), getattr(message, "embeds", ()))
        if found:
            return found
    return ""


def parse_event_reference(url: str | None) -> tuple[str, str]:
    """Return ``(transaction hash, event index)`` from an oracle link's query."""

    if not url:
        return "", ""
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    if parts.fragment and "?" in parts.fragment:
        query.update(parse_qs(parts.fragment.split("?", 1)[1]))
    tx_hash = (query.get("transactionHash") or [""])[0].strip()
    event_index = (query.get("eventIndex") or [""])[0].strip()
    return tx_hash, event_index


__all__ = [
    "RECOGNISED_DOMAINS",
    "find_link",
    "find_link_in_messages",
    "match_link",
    "parse_event_reference",
]
