"""Runtime configuration helpers for the closeout bot."""

from __future__ import annotations

import logging
import os
import re
from typing import Dict, Optional, Sequence

from config import runtime as _runtime

__all__ = [
    "cfg",
    "reload_config",
    "get_config_snapshot",
    "get_env_name",
    "get_bot_name",
    "get_discord_token",
    "get_log_channel_id",
    "get_gspread_credentials",
    "get_closure_sheet_id",
    "get_closure_worksheet",
    "get_sheets_timeout_sec",
    "get_ticket_name_prefixes",
    "get_ticket_tool_bot_id",
    "get_close_command_text",
    "get_delete_command_text",
    "get_verification_tokens",
    "get_bonk_layout",
    "get_quaternary_bonks_enabled",
    "get_message_window",
    "get_scan_wake_sec",
    "get_scan_delay_sec",
    "get_scan_short_delay_sec",
    "get_market_feed_channel_id",
    "get_fallback_channel_id",
    "get_fallback_min_age_sec",
    "get_fallback_inactivity_sec",
    "get_fallback_tick_sec",
    "get_fallback_cache_ttl_sec",
    "get_fallback_created_ttl_sec",
    "get_fallback_max_attempts",
    "redact_value",
]

log = logging.getLogger("closeout.config")

# ===== Config Schema (authoritative) =====
_REQUIRED_ENV = (
    "DISCORD_TOKEN",
    "GSPREAD_CREDENTIALS",
    "CLOSURE_SHEET_ID",
)


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or str(value).strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


for _name in _REQUIRED_ENV:
    _require_env(_name)

_MISSING_VALUE = "—"
_INT_RE = re.compile(r"\d+")
_BONK_LAYOUTS = {"flat", "categorized"}

_CONFIG: Dict[str, object] = {}

_SECRET_KEYS = {
    "DISCORD_TOKEN",
    "GSPREAD_CREDENTIALS",
}


def redact_value(key: str, value: object) -> str:
    """Best-effort redaction for config snapshots that end up in logs."""

    key_upper = str(key).upper()
    if value in (None, "", [], (), {}):
        return _MISSING_VALUE
    if key_upper in _SECRET_KEYS or "TOKEN" in key_upper or "CREDENTIAL" in key_upper:
        return "set"
    return str(value)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _first_int(raw: str | None) -> Optional[int]:
    if not raw:
        return None
    for match in _INT_RE.finditer(raw):
        try:
            return int(match.group(0))
        except (TypeError, ValueError):
            continue
    return None


def _csv(raw: str | None, default: Sequence[str]) -> list[str]:
    parts = []
    if raw:
        for chunk in raw.split(","):
            item = chunk.strip()
            if item:
                parts.append(item)
    if parts:
        return parts
    return [str(item).strip() for item in default if str(item).strip()]


def _int_env(
    key: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Parse an optional integer environment variable defensively."""

    raw = os.getenv(key)
    if raw is None:
        return default

    text = str(raw).strip()
    if not text:
        return default

    try:
        value = int(text)
    except ValueError:
        log.warning("config: %s='%s' invalid; using default %s", key, text, default)
        return default

    if min_value is not None and value < min_value:
        log.warning("config: %s=%s < min %s; clamping", key, value, min_value)
        value = min_value

    if max_value is not None and value > max_value:
        log.warning("config: %s=%s > max %s; clamping", key, value, max_value)
        value = max_value

    return value


def _float_env(
    key: str,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    """Parse an optional float environment variable defensively."""

    raw = os.getenv(key)
    if raw is None:
        return default

    text = str(raw).strip()
    if not text:
        return default

    try:
        value = float(text)
    except ValueError:
        log.warning("config: %s='%s' invalid; using default %s", key, text, default)
        return default

    if min_value is not None and value < min_value:
        log.warning("config: %s=%s < min %s; clamping", key, value, min_value)
        value = min_value

    if max_value is not None and value > max_value:
        log.warning("config: %s=%s > max %s; clamping", key, value, max_value)
        value = max_value

    return value


def _bonk_layout() -> str:
    raw = (os.getenv("BONK_LAYOUT") or "flat").strip().lower()
    if raw not in _BONK_LAYOUTS:
        log.warning("config: BONK_LAYOUT='%s' invalid; using flat", raw)
        return "flat"
    return raw


def _log_snapshot(snapshot: Dict[str, object]) -> None:
    redacted = {key: redact_value(key, value) for key, value in snapshot.items()}
    log.info("config loaded", extra={"config": redacted})


def _load_config() -> Dict[str, object]:
    config: Dict[str, object] = {
        "PORT": _runtime.get_port(),
        "BOT_NAME": _runtime.get_bot_name(),
        "ENV_NAME": _runtime.get_env_name(),
        "DISCORD_TOKEN": os.getenv("DISCORD_TOKEN", ""),
        "LOG_CHANNEL_ID": _first_int(os.getenv("LOG_CHANNEL_ID")),
        "GSPREAD_CREDENTIALS": os.getenv("GSPREAD_CREDENTIALS", ""),
        "CLOSURE_SHEET_ID": (os.getenv("CLOSURE_SHEET_ID") or "").strip(),
        "CLOSURE_WORKSHEET": (os.getenv("CLOSURE_WORKSHEET") or "Sheet1").strip() or "Sheet1",
        "SHEETS_TIMEOUT_SEC": _float_env("SHEETS_TIMEOUT_SEC", 60.0, min_value=1.0),
        "TICKET_NAME_PREFIXES": _csv(os.getenv("TICKET_NAME_PREFIXES"), ("ticket-", "proposal-")),
        "TICKET_TOOL_BOT_ID": _first_int(os.getenv("TICKET_TOOL_BOT_ID")),
        "TICKET_TOOL_CLOSE_COMMAND": os.getenv("TICKET_TOOL_CLOSE_COMMAND", "$close"),
        "TICKET_TOOL_DELETE_COMMAND": os.getenv("TICKET_TOOL_DELETE_COMMAND", "$delete"),
        "VERIFICATION_TOKENS": _csv(os.getenv("VERIFICATION_TOKENS"), ("verified",)),
        "BONK_LAYOUT": _bonk_layout(),
        "ENABLE_QUATERNARY_BONKS": _env_bool("ENABLE_QUATERNARY_BONKS", False),
        "MESSAGE_WINDOW": _int_env("MESSAGE_WINDOW", 100, min_value=10, max_value=500),
        "SCAN_WAKE_SEC": _int_env("SCAN_WAKE_SEC", 60, min_value=10),
        "SCAN_DELAY_SEC": _float_env("SCAN_DELAY_SEC", 2.0, min_value=0.0),
        "SCAN_SHORT_DELAY_SEC": _float_env("SCAN_SHORT_DELAY_SEC", 0.5, min_value=0.0),
        "MARKET_FEED_CHANNEL_ID": _first_int(os.getenv("MARKET_FEED_CHANNEL_ID")),
        "FALLBACK_CHANNEL_ID": _first_int(os.getenv("FALLBACK_CHANNEL_ID")),
        "FALLBACK_MIN_AGE_SEC": _int_env("FALLBACK_MIN_AGE_SEC", 300, min_value=0),
        "FALLBACK_INACTIVITY_SEC": _int_env("FALLBACK_INACTIVITY_SEC", 180, min_value=0),
        "FALLBACK_TICK_SEC": _int_env("FALLBACK_TICK_SEC", 30, min_value=5),
        "FALLBACK_CACHE_TTL_SEC": _int_env("FALLBACK_CACHE_TTL_SEC", 3600, min_value=60),
        "FALLBACK_CREATED_TTL_SEC": _int_env("FALLBACK_CREATED_TTL_SEC", 86400, min_value=60),
        "FALLBACK_MAX_ATTEMPTS": _int_env("FALLBACK_MAX_ATTEMPTS", 5, min_value=1),
        "LOG_LEVEL": _runtime.get_log_level(),
    }
    return config


def reload_config() -> Dict[str, object]:
    """Reload configuration from environment and return a snapshot."""

    for _name in _REQUIRED_ENV:
        _require_env(_name)

    snapshot = _load_config()

    global _CONFIG
    _CONFIG = snapshot
    _log_snapshot(snapshot)
    return dict(_CONFIG)


reload_config()


class _ConfigFacade:
    __slots__ = ()

    def get(self, key: object, default: object | None = None) -> object | None:
        normalised = str(key or "").strip().upper()
        if not normalised:
            return default
        return _CONFIG.get(normalised, default)

    def __contains__(self, key: object) -> bool:  # pragma: no cover - convenience
        return str(key or "").strip().upper() in _CONFIG


cfg = _ConfigFacade()


def get_config_snapshot() -> Dict[str, object]:
    """Return a shallow copy of the cached config values."""

    return dict(_CONFIG)


def _optional_id(key: str) -> Optional[int]:
    value = _CONFIG.get(key)
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _str(key: str, default: str = "") -> str:
    value = _CONFIG.get(key)
    return str(value) if isinstance(value, str) and value else default


def get_env_name(default: str = "dev") -> str:
    return _str("ENV_NAME", default)


def get_bot_name(default: str = "OO-Closeout") -> str:
    return _str("BOT_NAME", default)


def get_discord_token() -> str:
    return _str("DISCORD_TOKEN")


def get_log_channel_id() -> Optional[int]:
    return _optional_id("LOG_CHANNEL_ID")


def get_gspread_credentials() -> str:
    return _str("GSPREAD_CREDENTIALS")


def get_closure_sheet_id() -> str:
    return _str("CLOSURE_SHEET_ID")


def get_closure_worksheet() -> str:
    return _str("CLOSURE_WORKSHEET", "Sheet1")


def get_sheets_timeout_sec() -> float:
    return float(_CONFIG.get("SHEETS_TIMEOUT_SEC", 60.0))


def get_ticket_name_prefixes() -> tuple[str, ...]:
    raw = _CONFIG.get("TICKET_NAME_PREFIXES") or ("ticket-",)
    return tuple(str(item).lower() for item in raw)


def get_ticket_tool_bot_id() -> Optional[int]:
    """Return the configured ticket-creation bot identifier when available."""

    return _optional_id("TICKET_TOOL_BOT_ID")


def get_close_command_text() -> str:
    return _str("TICKET_TOOL_CLOSE_COMMAND")


def get_delete_command_text() -> str:
    return _str("TICKET_TOOL_DELETE_COMMAND")


def get_verification_tokens() -> tuple[str, ...]:
    raw = _CONFIG.get("VERIFICATION_TOKENS") or ("verified",)
    return tuple(str(item).lower() for item in raw)


def get_bonk_layout() -> str:
    return _str("BONK_LAYOUT", "flat")


def get_quaternary_bonks_enabled() -> bool:
    return bool(_CONFIG.get("ENABLE_QUATERNARY_BONKS", False))


def get_message_window() -> int:
    return int(_CONFIG.get("MESSAGE_WINDOW", 100))


def get_scan_wake_sec() -> int:
    return int(_CONFIG.get("SCAN_WAKE_SEC", 60))


def get_scan_delay_sec() -> float:
    return float(_CONFIG.get("SCAN_DELAY_SEC", 2.0))


def get_scan_short_delay_sec() -> float:
    return float(_CONFIG.get("SCAN_SHORT_DELAY_SEC", 0.5))


def get_market_feed_channel_id() -> Optional[int]:
    return _optional_id("MARKET_FEED_CHANNEL_ID")


def get_fallback_channel_id() -> Optional[int]:
    return _optional_id("FALLBACK_CHANNEL_ID")


def get_fallback_min_age_sec() -> int:
    return int(_CONFIG.get("FALLBACK_MIN_AGE_SEC", 300))


def get_fallback_inactivity_sec() -> int:
    return int(_CONFIG.get("FALLBACK_INACTIVITY_SEC", 180))


def get_fallback_tick_sec() -> int:
    return int(_CONFIG.get("FALLBACK_TICK_SEC", 30))


def get_fallback_cache_ttl_sec() -> int:
    return int(_CONFIG.get("FALLBACK_CACHE_TTL_SEC", 3600))


def get_fallback_created_ttl_sec() -> int:
    return int(_CONFIG.get("FALLBACK_CREATED_TTL_SEC", 86400))


def get_fallback_max_attempts() -> int:
    return int(_CONFIG.get("FALLBACK_MAX_ATTEMPTS", 5))
