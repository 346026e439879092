"""Formatting helpers for human-friendly durations."""
from __future__ import annotations

import re
from typing import Optional

__all__ = ["humanize_duration", "parse_duration"]

_DURATION_RE = re.compile(r"(\d+)\s*([dhm])", re.IGNORECASE)
_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60}


def humanize_duration(seconds: Optional[float]) -> str:
    """Return a compact representation of ``seconds`` (fail-soft)."""

    if seconds is None:
        return "-"
    total = max(0, int(seconds))
    units = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))
    parts: list[str] = []
    for suffix, length in units:
        if total >= length:
            qty, total = divmod(total, length)
            parts.append(f"{qty}{suffix}")
        if len(parts) == 2:
            break
    if not parts:
        parts.append("0s")
    return "".join(parts)


def parse_duration(text: Optional[str]) -> Optional[int]:
    """Parse ``2h5m`` / ``30m`` / ``1d`` / bare minutes into seconds.

    Returns ``None`` for empty, zero or unparseable input.
    """

    raw = "".join((text or "").split())
    if not raw:
        return None
    if raw.isdigit():
        seconds = int(raw) * 60
        return seconds or None
    total = 0
    consumed = 0
    for match in _DURATION_RE.finditer(raw):
        total += int(match.group(1)) * _UNIT_SECONDS[match.group(2).lower()]
        consumed += len(match.group(0))
    if consumed != len(raw):
        return None
    return total or None
