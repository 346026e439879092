from __future__ import annotations

# config/runtime.py
import os
from typing import Optional


def get_port(default: int = 10000) -> int:
    """
    Returns the port for the aiohttp health server.
    Hosting platforms provide $PORT; locally we fall back to 10000.
    """
    try:
        return int(os.getenv("PORT", str(default)))
    except ValueError:
        return default


def get_env_name(default: str = "dev") -> str:
    return os.getenv("ENV_NAME", default)


def get_bot_name(default: str = "OO-Closeout") -> str:
    return os.getenv("BOT_NAME", default)


def _coerce_int(value: Optional[str], fallback: int) -> int:
    try:
        if value is None:
            raise TypeError
        return int(value)
    except (TypeError, ValueError):
        return fallback


def get_command_prefix(default: str = "!") -> str:
    return os.getenv("COMMAND_PREFIX", default) or default


def get_log_level(default: str = "INFO") -> str:
    return (os.getenv("LOG_LEVEL") or default).strip().upper() or default


def get_log_channel_id(default: int = 0) -> int:
    """Discord channel/thread ID for runtime confirmations and alerts."""

    return _coerce_int(os.getenv("LOG_CHANNEL_ID"), default)


def get_settings_path(default: str = "bot_config.json") -> str:
    """Location of the operator-editable settings file."""

    return (os.getenv("SETTINGS_PATH") or default).strip() or default


def get_verifier_map_path(default: str = "config/verifiers.json") -> str:
    """Location of the versioned verifier identity map."""

    return (os.getenv("VERIFIER_MAP_PATH") or default).strip() or default
