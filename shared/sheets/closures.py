"""Closure worksheet access (one row per ticket)."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from shared.config import get_closure_sheet_id, get_closure_worksheet, get_sheets_timeout_sec
from shared.sheets import async_adapter
from shared.sheets import core

log = logging.getLogger("closeout.sheets.closures")


def _upsert(row: Mapping[str, str], key_column: str) -> str:
    sheet_id = get_closure_sheet_id()
    tab = get_closure_worksheet()
    action = core.upsert_row(sheet_id, tab, row, key_column=key_column)
    log.info(
        "🧾 closure %s • %s=%s",
        action,
        key_column,
        row.get(key_column, ""),
        extra={"worksheet": tab, "action": action},
    )
    return action


def _read(key_column: str, key_value: str) -> Optional[dict[str, str]]:
    return core.read_row(
        get_closure_sheet_id(),
        get_closure_worksheet(),
        key_column=key_column,
        key_value=key_value,
    )


async def aupsert_closure(
    row: Mapping[str, str],
    *,
    key_column: str,
    timeout: float | None = None,
) -> str:
    """Upsert ``row`` keyed by ``key_column``; raises ``asyncio.TimeoutError`` on hang."""

    resolved = get_sheets_timeout_sec() if timeout is None else timeout
    return await async_adapter.arun(_upsert, row, key_column, timeout=resolved)


async def aread_closure(
    key_column: str,
    key_value: str,
    *,
    timeout: float | None = None,
) -> Optional[dict[str, str]]:
    resolved = get_sheets_timeout_sec() if timeout is None else timeout
    return await async_adapter.arun(_read, key_column, key_value, timeout=resolved)


__all__ = ["aread_closure", "aupsert_closure"]
