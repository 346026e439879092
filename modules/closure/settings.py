"""Operator-editable processing settings persisted as JSON."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping

log = logging.getLogger("closeout.closure.settings")

POST_ACTIONS = ("none", "close", "delete")
DEFAULT_MIN_TICKET_AGE_SEC = 2 * 3600 + 5 * 60
DEFAULT_PROCESSING_INTERVAL_SEC = 30 * 60
MIN_PROCESSING_INTERVAL_SEC = 60


def _env_defaults() -> dict[str, Any]:
    action = (os.getenv("DEFAULT_TICKET_CLOSE_ACTION") or "none").strip().lower()
    return {
        "auto_processing_enabled": (os.getenv("ENABLE_AUTO_PROCESSING") or "true").strip().lower() == "true",
        "post_action": action if action in POST_ACTIONS else "none",
        "min_ticket_age_sec": DEFAULT_MIN_TICKET_AGE_SEC,
        "processing_interval_sec": DEFAULT_PROCESSING_INTERVAL_SEC,
        "last_successful_scan_ts": 0.0,
        "error_user_id": (os.getenv("DEFAULT_ERROR_USER_ID") or "").strip() or None,
    }


@dataclass(frozen=True)
class ProcessingSettings:
    auto_processing_enabled: bool = True
    post_action: str = "none"
    min_ticket_age_sec: int = DEFAULT_MIN_TICKET_AGE_SEC
    processing_interval_sec: int = DEFAULT_PROCESSING_INTERVAL_SEC
    last_successful_scan_ts: float = 0.0
    error_user_id: str | None = None

    @property
    def error_ping(self) -> str:
        return f" <@{self.error_user_id}>" if self.error_user_id else ""


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


_VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "auto_processing_enabled": lambda v: isinstance(v, bool),
    "post_action": lambda v: isinstance(v, str) and v in POST_ACTIONS,
    "min_ticket_age_sec": _is_positive_number,
    "processing_interval_sec": lambda v: _is_positive_number(v) and v >= MIN_PROCESSING_INTERVAL_SEC,
    "last_successful_scan_ts": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "error_user_id": lambda v: v is None or (isinstance(v, str) and v.isdigit()),
}


def coerce_settings(raw: Mapping[str, Any]) -> tuple[ProcessingSettings, bool]:
    """Validate ``raw`` key by key; returns ``(settings, defaults_applied)``."""

    defaults = _env_defaults()
    values: dict[str, Any] = {}
    changed = False
    for item in fields(ProcessingSettings):
        key = item.name
        if key not in raw:
            values[key] = defaults[key]
            changed = True
            continue
        value = raw[key]
        if not _VALIDATORS[key](value):
            log.warning('Invalid value for %s in settings: "%s". Using default.', key, value)
            values[key] = defaults[key]
            changed = True
            continue
        values[key] = value
    return ProcessingSettings(**values), changed


class SettingsStore:
    """Holds the live settings and writes every change back to disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._settings = ProcessingSettings(**_env_defaults())

    @property
    def current(self) -> ProcessingSettings:
        return self._settings

    def load(self) -> ProcessingSettings:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            log.info("%s not found. Initializing with default values.", self.path.name)
            self.save()
            return self._settings
        except (OSError, json.JSONDecodeError):
            log.exception("Error loading %s. Using default values.", self.path.name)
            return self._settings

        if not isinstance(raw, Mapping):
            log.warning("%s is not a JSON object. Using default values.", self.path.name)
            return self._settings

        self._settings, changed = coerce_settings(raw)
        log.info("Configuration loaded from %s.", self.path.name)
        if changed:
            log.info("Default values applied for some missing/invalid keys. Saving updated settings.")
            self.save()
        return self._settings

    def save(self) -> None:
        try:
            self.path.write_text(json.dumps(asdict(self._settings), indent=2), encoding="utf-8")
        except OSError:
            log.exception("Error saving %s", self.path.name)

    def update(self, **changes: Any) -> bool:
        """Apply validated ``changes``; persists and returns True when anything changed."""

        for key, value in changes.items():
            validator = _VALIDATORS.get(key)
            if validator is None:
                raise KeyError(key)
            if not validator(value):
                raise ValueError(f"invalid value for {key}: {value!r}")
        updated = replace(self._settings, **changes)
        if updated == self._settings:
            return False
        self._settings = updated
        self.save()
        return True


__all__ = [
    "DEFAULT_MIN_TICKET_AGE_SEC",
    "DEFAULT_PROCESSING_INTERVAL_SEC",
    "MIN_PROCESSING_INTERVAL_SEC",
    "POST_ACTIONS",
    "ProcessingSettings",
    "SettingsStore",
    "coerce_settings",
]
