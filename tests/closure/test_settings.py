import json

import pytest

from modules.closure.settings import (
    DEFAULT_MIN_TICKET_AGE_SEC,
    DEFAULT_PROCESSING_INTERVAL_SEC,
    SettingsStore,
)
from shared.utils.humanize import humanize_duration, parse_duration


def test_missing_file_is_created_with_defaults(tmp_path):
    path = tmp_path / "bot_config.json"
    store = SettingsStore(path)
    settings = store.load()
    assert settings.min_ticket_age_sec == DEFAULT_MIN_TICKET_AGE_SEC == 7500
    assert settings.processing_interval_sec == DEFAULT_PROCESSING_INTERVAL_SEC
    assert settings.last_successful_scan_ts == 0.0
    assert json.loads(path.read_text())["post_action"] == "none"


def test_invalid_keys_fall_back_and_file_is_rewritten(tmp_path):
    path = tmp_path / "bot_config.json"
    path.write_text(
        json.dumps(
            {
                "auto_processing_enabled": "yes",
                "post_action": "delete",
                "min_ticket_age_sec": -5,
                "processing_interval_sec": 30,
                "error_user_id": "1234",
            }
        )
    )
    settings = SettingsStore(path).load()
    assert settings.auto_processing_enabled is True
    assert settings.post_action == "delete"
    assert settings.min_ticket_age_sec == DEFAULT_MIN_TICKET_AGE_SEC
    assert settings.processing_interval_sec == DEFAULT_PROCESSING_INTERVAL_SEC
    assert settings.error_user_id == "1234"
    assert settings.error_ping == " <@1234>"
    stored = json.loads(path.read_text())
    assert stored["min_ticket_age_sec"] == DEFAULT_MIN_TICKET_AGE_SEC
    assert "last_successful_scan_ts" in stored


def test_unreadable_file_keeps_defaults(tmp_path):
    path = tmp_path / "bot_config.json"
    path.write_text("{not json")
    settings = SettingsStore(path).load()
    assert settings.post_action == "none"
    assert path.read_text() == "{not json"


def test_env_defaults_apply(tmp_path, monkeypatch):
    monkeypatch.setenv("DEFAULT_TICKET_CLOSE_ACTION", "close")
    monkeypatch.setenv("ENABLE_AUTO_PROCESSING", "false")
    settings = SettingsStore(tmp_path / "s.json").load()
    assert settings.post_action == "close"
    assert settings.auto_processing_enabled is False


def test_update_validates_and_persists(tmp_path):
    path = tmp_path / "bot_config.json"
    store = SettingsStore(path)
    store.load()
    assert store.update(post_action="close") is True
    assert store.update(post_action="close") is False
    assert json.loads(path.read_text())["post_action"] == "close"
    with pytest.raises(ValueError):
        store.update(processing_interval_sec=59)
    with pytest.raises(KeyError):
        store.update(colour="blue")


@pytest.mark.parametrize(
    "text, seconds",
    [("2h5m", 7500), ("30m", 1800), ("1d", 86400), ("45", 2700), (" 1h 30m ", 5400)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "0", "0m", "2x", "h", "1h30"])
def test_parse_duration_rejects(text):
    assert parse_duration(text) is None


def test_humanize_duration():
    assert humanize_duration(7500) == "2h5m"
    assert humanize_duration(0) == "0s"
    assert humanize_duration(None) == "-"
    assert humanize_duration(90061) == "1d1h"
