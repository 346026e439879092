"""Ticket closeout: parsing, auto-close, persistence and periodic scans."""

from __future__ import annotations

__all__ = [
    "auto_close",
    "links",
    "models",
    "parser",
    "processor",
    "rows",
    "scanner",
    "settings",
]
