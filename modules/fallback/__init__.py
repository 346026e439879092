"""Fallback containers for market events the ticket integration missed."""

from __future__ import annotations

__all__ = ["containers", "events", "supervisor"]
