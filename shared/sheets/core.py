"""Google Sheets adapter core used by the closure recorder."""

from __future__ import annotations

import json
import logging
import os
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, TypeVar

import gspread
from gspread import Worksheet
from gspread.exceptions import APIError, WorksheetNotFound
from gspread.utils import rowcol_to_a1
from requests import exceptions as requests_exceptions


log = logging.getLogger("closeout.sheets.core")

GSpreadClient = gspread.Client


class SheetsError(RuntimeError):
    """Base class for permanent, non-retryable sheet failures."""


class WorksheetMissingError(SheetsError):
    def __init__(self, worksheet_name: str) -> None:
        super().__init__(f'Worksheet "{worksheet_name}" not found.')
        self.worksheet_name = worksheet_name


class ColumnMissingError(SheetsError):
    def __init__(self, column: str, worksheet_name: str) -> None:
        super().__init__(f'Column "{column}" not found in worksheet "{worksheet_name}".')
        self.column = column
        self.worksheet_name = worksheet_name


@dataclass
class WorksheetCacheEntry:
    worksheet: Worksheet
    expires_at: float


_CLIENT_LOCK = threading.Lock()
_CLIENT: Optional[GSpreadClient] = None
_WORKSHEET_CACHE: Dict[Tuple[str, str], WorksheetCacheEntry] = {}

_RETRY_STATUS = {408, 425, 429, 500, 502, 503, 504}

T = TypeVar("T")


def clear_cached_client() -> None:
    """Drop the cached gspread client (mainly for tests)."""

    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = None


def clear_cached_worksheets(spreadsheet_id: Optional[str] = None) -> None:
    """Clear the worksheet cache.

    Args:
        spreadsheet_id: If provided only entries for this spreadsheet are removed.
    """

    if spreadsheet_id is None:
        _WORKSHEET_CACHE.clear()
        return
    keys = [key for key in _WORKSHEET_CACHE if key[0] == spreadsheet_id]
    for key in keys:
        _WORKSHEET_CACHE.pop(key, None)


def _load_credentials() -> Mapping[str, Any]:
    raw = os.getenv("GSPREAD_CREDENTIALS")
    if not raw:
        raise RuntimeError("GSPREAD_CREDENTIALS environment variable is required")
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError as exc:  # pragma: no cover - configuration error path
        raise RuntimeError("GSPREAD_CREDENTIALS must be valid JSON") from exc
    if not isinstance(creds, Mapping):  # pragma: no cover - configuration error path
        raise RuntimeError("GSPREAD_CREDENTIALS JSON must represent an object")
    return creds


def get_client() -> GSpreadClient:
    """Return a cached gspread client authenticated via service-account JSON."""

    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            credentials = _load_credentials()
            log.debug("Authorising gspread client with service-account credentials")
            _CLIENT = gspread.service_account_from_dict(credentials)
    return _CLIENT


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, APIError):
        resp = getattr(exc, "response", None)
        status = getattr(resp, "status_code", None)
        if status in _RETRY_STATUS:
            return True
        text = str(getattr(resp, "text", "") or "")
        detail = str(getattr(exc, "args", [""])[0] or "")
        blob = f"{text} {detail}".lower()
        if "rate limit" in blob or "quota" in blob or "timeout" in blob:
            return True
    if isinstance(exc, requests_exceptions.RequestException):
        return True
    return False


def with_backoff(func: Callable[[], T], *, retries: int = 5, base_delay: float = 0.5, max_delay: float = 8.0) -> T:
    """Execute *func* with exponential backoff on transient failures."""

    attempt = 0
    delay = base_delay
    while True:
        try:
            return func()
        except Exception as exc:
            attempt += 1
            if attempt > retries or not _should_retry(exc):
                raise
            sleep_for = min(max_delay, delay) + random.uniform(0.0, base_delay)
            log.warning("Sheets call failed (attempt %s/%s): %s", attempt, retries, exc)
            time.sleep(sleep_for)
            delay *= 2


def get_worksheet(
    spreadsheet_id: str,
    worksheet_name: str,
    *,
    ttl: float = 300.0,
    force: bool = False,
) -> Worksheet:
    """Return a cached worksheet handle, refreshing after *ttl* seconds.

    Raises :class:`WorksheetMissingError` when the tab does not exist.
    """

    now = time.monotonic()
    cache_key = (spreadsheet_id, worksheet_name)
    if not force and ttl > 0:
        cached = _WORKSHEET_CACHE.get(cache_key)
        if cached and cached.expires_at > now:
            return cached.worksheet

    spreadsheet = with_backoff(lambda: get_client().open_by_key(spreadsheet_id))
    try:
        worksheet = with_backoff(lambda: spreadsheet.worksheet(worksheet_name))
    except WorksheetNotFound as exc:
        raise WorksheetMissingError(worksheet_name) from exc
    if ttl > 0:
        _WORKSHEET_CACHE[cache_key] = WorksheetCacheEntry(worksheet=worksheet, expires_at=now + ttl)
    return worksheet


def _header_lookup(values: Sequence[Sequence[Any]], worksheet_name: str, *, casefold: bool) -> tuple[list[str], Dict[str, int]]:
    if not values:
        raise SheetsError(f"Worksheet '{worksheet_name}' is missing a header row")
    header = [str(cell).strip() for cell in values[0]]
    lookup: Dict[str, int] = {}
    for idx, col in enumerate(header):
        key = col.casefold() if casefold else col
        if key and key not in lookup:
            lookup[key] = idx
    return header, lookup


def _resolve_mapping_value(row: Mapping[str, Any], key: str, *, casefold: bool) -> Any:
    if key in row:
        return row[key]
    if casefold:
        target = key.casefold()
        for rk, value in row.items():
            if isinstance(rk, str) and rk.casefold() == target:
                return value
    return ""


def _normalize_cell(value: Any, *, casefold: bool) -> str:
    text = "" if value is None else str(value).strip()
    return text.casefold() if casefold else text


def _find_row(
    values: Sequence[Sequence[Any]],
    col_idx: int,
    key_value: str,
    *,
    casefold: bool,
) -> Optional[int]:
    target = _normalize_cell(key_value, casefold=casefold)
    for idx, existing in enumerate(values[1:], start=2):
        cell = existing[col_idx] if col_idx < len(existing) else ""
        if _normalize_cell(cell, casefold=casefold) == target:
            return idx
    return None


def upsert_row(
    spreadsheet_id: str,
    worksheet_name: str,
    row: Mapping[str, Any],
    *,
    key_column: str,
    value_input_option: str = "RAW",
    casefold: bool = True,
    ttl: float = 60.0,
) -> str:
    """Insert or update *row* identified by *key_column*.

    Returns "inserted" when a new row is appended or "updated" when the row existed.
    Columns present in the header but absent from *row* are written as ``""``.
    """

    worksheet = get_worksheet(spreadsheet_id, worksheet_name, ttl=ttl)
    values = with_backoff(lambda: worksheet.get_all_values())
    header, lookup = _header_lookup(values, worksheet_name, casefold=casefold)

    col_idx = lookup.get(key_column.casefold() if casefold else key_column)
    if col_idx is None:
        raise ColumnMissingError(key_column, worksheet_name)
    key_value = _resolve_mapping_value(row, key_column, casefold=casefold)
    if not _normalize_cell(key_value, casefold=casefold):
        raise ValueError("Key column value must not be empty")

    target_row_index = _find_row(values, col_idx, str(key_value), casefold=casefold)

    ordered_values = []
    for col in header:
        value = _resolve_mapping_value(row, col, casefold=casefold) if col else ""
        if isinstance(value, (list, tuple, set)):
            value = ", ".join(str(v) for v in value)
        if value is None:
            value = ""
        ordered_values.append(str(value))

    if target_row_index is not None:
        start = rowcol_to_a1(target_row_index, 1)
        end = rowcol_to_a1(target_row_index, len(ordered_values))
        cell_range = f"{start}:{end}" if len(ordered_values) > 1 else start
        with_backoff(
            lambda: worksheet.update(
                range_name=cell_range, values=[ordered_values], value_input_option=value_input_option
            )
        )
        return "updated"

    with_backoff(lambda: worksheet.append_row(ordered_values, value_input_option=value_input_option))
    return "inserted"


def read_row(
    spreadsheet_id: str,
    worksheet_name: str,
    *,
    key_column: str,
    key_value: str,
    casefold: bool = True,
    ttl: float = 60.0,
) -> Optional[Dict[str, str]]:
    """Return the row matching *key_value* as ``{header: value}`` or ``None``."""

    worksheet = get_worksheet(spreadsheet_id, worksheet_name, ttl=ttl)
    values = with_backoff(lambda: worksheet.get_all_values())
    header, lookup = _header_lookup(values, worksheet_name, casefold=casefold)
    col_idx = lookup.get(key_column.casefold() if casefold else key_column)
    if col_idx is None:
        raise ColumnMissingError(key_column, worksheet_name)
    target = _find_row(values, col_idx, key_value, casefold=casefold)
    if target is None:
        return None
    existing = values[target - 1]
    return {
        col: (str(existing[idx]) if idx < len(existing) else "")
        for idx, col in enumerate(header)
        if col
    }
