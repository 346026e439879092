"""Parser for ``CLOSING:`` blocks posted in ticket containers.

A block looks like::

    CLOSING: Alice, Bob
    Carl bonked Dave, Erin primary
    findoor: frank

The first line names up to three participants (primary, secondary, tertiary)
or one kind keyword (``assertion``, ``disputed`` …). Following lines record
bonks and manual overrides. Unknown lines are logged and skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from modules.closure.models import (
    BONK_CATEGORIES,
    MAX_BONKERS,
    MAX_PARTICIPANTS,
    QUATERNARY,
    BonkRecord,
    ClosureKind,
    ManualClosing,
    capitalize_name,
)
from shared.identity import VerifierIdentityMap

log = logging.getLogger("closeout.closure.parser")

CLOSING_TOKEN = "closing:"

_NAME_SPLIT_RE = re.compile(r"[,.]")
_BONKED_RE = re.compile(r"\bbonked\b", re.IGNORECASE)
_BONK_SPLIT_RE = re.compile(r"\s+bonked\s+", re.IGNORECASE)
_OVERRIDE_RE = re.compile(r"^(link|type|alertoor|findoor)\s*:\s*(.*)$", re.IGNORECASE)


@dataclass(frozen=True)
class ParseOptions:
    """Bonk layout switches.

    ``flat`` buckets every victim under its bonker and ignores any trailing
    category word; ``categorized`` requires a category per bonk line.
    """

    layout: str = "flat"
    quaternary: bool = False

    @property
    def categories(self) -> tuple[str, ...]:
        if self.quaternary:
            return BONK_CATEGORIES + (QUATERNARY,)
        return BONK_CATEGORIES

    @property
    def categorized(self) -> bool:
        return self.layout == "categorized"


def is_closing_line(line: str | None) -> bool:
    return (line or "").lstrip().lower().startswith(CLOSING_TOKEN)


def find_closing_message(messages: Iterable[Any]) -> Any | None:
    """Return the first message (in the given order) that opens with ``CLOSING:``."""

    for message in messages:
        content = getattr(message, "content", "") or ""
        first_line = content.split("\n", 1)[0]
        if is_closing_line(first_line):
            return message
    return None


def split_names(text: str) -> list[str]:
    return [capitalize_name(part) for part in _NAME_SPLIT_RE.split(text or "") if part.strip()]


def _split_victims(text: str) -> list[str]:
    return [capitalize_name(part) for part in (text or "").split(",") if part.strip()]


def parse_bonk_line(line: str, options: ParseOptions) -> BonkRecord | None:
    parts = _BONK_SPLIT_RE.split(line.strip(), maxsplit=1)
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        return None
    bonker = capitalize_name(parts[0])
    remainder = parts[1].strip()

    category: str | None = None
    tokens = remainder.rsplit(None, 1)
    if len(tokens) == 2 and tokens[1].lower() in options.categories:
        category = tokens[1].lower()
        remainder = tokens[0]
    elif len(tokens) == 1 and tokens[0].lower() in options.categories:
        return None

    if options.categorized and category is None:
        return None

    victims = _split_victims(remainder)
    if not victims:
        return None
    return BonkRecord(
        bonker=bonker,
        victims=tuple(victims),
        category=category if options.categorized else None,
    )


def _merge_bonks(bonks: Sequence[BonkRecord]) -> tuple[BonkRecord, ...]:
    merged: dict[tuple[str, str | None], list[str]] = {}
    display: dict[tuple[str, str | None], str] = {}
    for bonk in bonks:
        key = (bonk.bonker.casefold(), bonk.category)
        display.setdefault(key, bonk.bonker)
        victims = merged.setdefault(key, [])
        for victim in bonk.victims:
            if victim not in victims:
                victims.append(victim)
    return tuple(
        BonkRecord(bonker=display[key], victims=tuple(victims), category=key[1])
        for key, victims in merged.items()
    )


def parse_closing_block(
    content: str,
    *,
    author_id: object,
    author_name: str,
    identities: VerifierIdentityMap,
    options: ParseOptions | None = None,
    log_prefix: str = "",
) -> ManualClosing:
    """Parse one ``CLOSING:`` message into a :class:`ManualClosing`.

    Validation problems are carried in ``errors``; the caller decides whether
    to persist.
    """

    opts = options or ParseOptions()
    lines = (content or "").split("\n")
    first = lines[0].strip()
    if not is_closing_line(first):
        raise ValueError("message does not start with CLOSING:")

    closer, _ = identities.resolve(author_id, author_name)
    remainder = first.lstrip()[len(CLOSING_TOKEN):].strip()

    errors: list[str] = []
    kind = ClosureKind.from_keyword(remainder)
    names: list[str] = []
    if kind is None:
        kind = ClosureKind.STANDARD
        names = split_names(remainder)
        if len(names) > MAX_PARTICIPANTS:
            errors.append(f'"CLOSING:" max {MAX_PARTICIPANTS} users. Found: {len(names)}.')
        log.info(
            "%s P/S/T: %s. Closer: %s",
            log_prefix,
            "/".join(names[:MAX_PARTICIPANTS]) or "-",
            closer,
        )
    else:
        log.info("%s %s mode from CLOSING line.", log_prefix, kind.value)

    overrides = {"link": "", "type": "", "alertoor": "", "findoor": ""}
    bonks: list[BonkRecord] = []
    for raw_line in lines[1:]:
        line = raw_line.strip()
        if not line:
            continue
        override = _OVERRIDE_RE.match(line)
        if override:
            key, value = override.group(1).lower(), override.group(2).strip()
            overrides[key] = value if key == "link" else capitalize_name(value)
            continue
        if _BONKED_RE.search(line):
            if kind.clears_participants:
                log.info("%s Bonk line ignored for %s: %r", log_prefix, kind.value, line)
                continue
            bonk = parse_bonk_line(line, opts)
            if bonk is None:
                log.info("%s Malformed bonk line: %r", log_prefix, line)
                continue
            bonks.append(bonk)
            continue
        log.info("%s Line not recognised: %r", log_prefix, line)

    merged = _merge_bonks(bonks)
    distinct_bonkers = {bonk.bonker.casefold() for bonk in merged}
    if len(distinct_bonkers) > MAX_BONKERS:
        log.warning(
            "%s %d bonkers found; only the first %d are recorded",
            log_prefix,
            len(distinct_bonkers),
            MAX_BONKERS,
        )

    padded = (names + ["", "", ""])[:MAX_PARTICIPANTS]
    return ManualClosing(
        kind=kind,
        closer=closer,
        primary=padded[0],
        secondary=padded[1],
        tertiary=padded[2],
        disputed=kind is ClosureKind.DISPUTED,
        bonks=merged,
        link=overrides["link"],
        type_label=overrides["type"],
        alertoor=overrides["alertoor"],
        findoor=overrides["findoor"],
        errors=tuple(errors),
    )


__all__ = [
    "CLOSING_TOKEN",
    "ParseOptions",
    "find_closing_message",
    "is_closing_line",
    "parse_bonk_line",
    "parse_closing_block",
    "split_names",
]
