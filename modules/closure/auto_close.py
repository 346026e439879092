"""Heuristic closure for tickets that never received a ``CLOSING:`` block."""

from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from modules.closure.models import MAX_PARTICIPANTS, ClosureKind, SynthesizedClosing
from shared.identity import VerifierIdentityMap

log = logging.getLogger("closeout.closure.auto_close")

_BONK_RE = re.compile(r"\bbonk\b", re.IGNORECASE)
_DISPUTED_RE = re.compile(r"\bdisputed\b", re.IGNORECASE)


class AutoCloseUnavailable(Exception):
    """The transcript does not support a safe automatic closure."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail or reason


def _author_id(message: Any) -> int | None:
    author = getattr(message, "author", None)
    value = getattr(author, "id", None)
    return int(value) if value is not None else None


def author_display_name(message: Any) -> str:
    author = getattr(message, "author", None)
    return (
        getattr(author, "display_name", None)
        or getattr(author, "name", None)
        or str(getattr(author, "id", "unknown"))
    )


def mentions_bonk(messages: Sequence[Any], *, bot_user_id: int | None = None) -> bool:
    """True when any human-authored message mentions ``bonk`` as a word."""

    for message in messages:
        if bot_user_id is not None and _author_id(message) == bot_user_id:
            continue
        if _BONK_RE.search(getattr(message, "content", "") or ""):
            return True
    return False


def find_anchor_index(messages: Sequence[Any], ticket_tool_id: int | None) -> int | None:
    """Index of the newest ticket-tool message with an embed (chronological input)."""

    if ticket_tool_id is None:
        return None
    for index in range(len(messages) - 1, -1, -1):
        message = messages[index]
        if _author_id(message) == ticket_tool_id and getattr(message, "embeds", None):
            return index
    return None


def _is_verification(content: str, tokens: Sequence[str]) -> bool:
    lowered = (content or "").strip().lower()
    return any(lowered.startswith(token) for token in tokens if token)


def synthesize_closing(
    messages: Sequence[Any],
    *,
    ticket_tool_id: int | None,
    identities: VerifierIdentityMap,
    verification_tokens: Sequence[str] = ("verified",),
    log_prefix: str = "",
) -> SynthesizedClosing:
    """Build a closure from verification messages posted after the ticket opened.

    ``messages`` must be in chronological order. Raises
    :class:`AutoCloseUnavailable` when no anchor or no usable signal exists.
    """

    anchor = find_anchor_index(messages, ticket_tool_id)
    if anchor is None:
        raise AutoCloseUnavailable("anchor_missing", "ticket creation message not found")

    window = messages[anchor + 1 :]
    verifiers: list[str] = []
    for message in window:
        if not _is_verification(getattr(message, "content", ""), verification_tokens):
            continue
        fallback = author_display_name(message)
        name, known = identities.resolve(_author_id(message), fallback)
        if not known:
            log.warning(
                "%s verifier %s not in identity map; using display name",
                log_prefix,
                fallback,
                extra={"user_id": _author_id(message)},
            )
        if name not in verifiers:
            verifiers.append(name)
        if len(verifiers) >= MAX_PARTICIPANTS:
            break

    if not verifiers:
        transcript = "\n".join(getattr(m, "content", "") or "" for m in messages)
        if _DISPUTED_RE.search(transcript):
            log.info("%s auto-close: disputed with no verifiers", log_prefix)
            return SynthesizedClosing(kind=ClosureKind.DISPUTED, disputed=True)
        raise AutoCloseUnavailable("no_verifiers", "no verification messages found")

    padded = (verifiers + ["", "", ""])[:MAX_PARTICIPANTS]
    log.info("%s auto-close verifiers: %s", log_prefix, ", ".join(verifiers))
    return SynthesizedClosing(
        kind=ClosureKind.STANDARD,
        closer=verifiers[0],
        primary=padded[0],
        secondary=padded[1],
        tertiary=padded[2],
        verifiers=tuple(verifiers),
    )


__all__ = [
    "AutoCloseUnavailable",
    "author_display_name",
    "find_anchor_index",
    "mentions_bonk",
    "synthesize_closing",
]
