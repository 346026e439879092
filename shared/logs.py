"""Shared logging helpers for lifecycle events."""

from __future__ import annotations

from time import monotonic
from typing import Any

__all__ = ["log_lifecycle", "reset_lifecycle_dedupe"]


_lifecycle_dedupe: dict[tuple[str, str], float] = {}

_SCOPE_LABELS = {
    "scan": "Ticket scan",
    "ticket": "Ticket pass",
    "fallback": "Fallback queue",
    "settings": "Settings",
}


def _fmt_kvs(kvs: dict[str, Any]) -> str:
    parts: list[str] = []
    for key, value in kvs.items():
        if value in (None, "", "-", False, {}, []):
            continue
        parts.append(f"{key}={value}")
    return " • ".join(parts)


def reset_lifecycle_dedupe() -> None:
    """Forget dedupe timestamps (tests)."""

    _lifecycle_dedupe.clear()


def log_lifecycle(
    logger: Any,
    scope: str = "scan",
    event: str = "event",
    *,
    emoji: str = "📘",
    dedupe: bool = True,
    level: str = "info",
    **fields: Any,
) -> str | None:
    """Log a human-readable lifecycle line with dedupe and blank-field filtering.

    Parameters
    ----------
    logger:
        Logger-like object exposing ``info``/``warning``.
    scope:
        Component scope (``"scan"``, ``"fallback"`` …).
    event:
        Lifecycle event name (e.g. ``"started"``).
    **fields:
        Additional key/value pairs rendered into the log line. Blank values
        (``None``, empty strings, ``-``, ``False``, empty containers) are
        omitted; numeric zero is kept since counters are meaningful here.

    The helper enforces a 5-second dedupe window per ``(scope, event)`` pair.
    """

    now = monotonic()
    resolved_scope = (scope or "scan").strip().lower() or "scan"
    key = (resolved_scope, event)
    last = _lifecycle_dedupe.get(key)
    if dedupe and last is not None and now - last < 5.0:
        return None
    _lifecycle_dedupe[key] = now

    title = _SCOPE_LABELS.get(resolved_scope, resolved_scope.title())
    kv_text = _fmt_kvs(fields)
    line = f"{emoji} {title} — event={event}" + (f" • {kv_text}" if kv_text else "")
    emit = getattr(logger, level, None) or logger.info
    try:
        emit(line)
    except Exception:
        # Logging should never raise upstream.
        pass

    return line
