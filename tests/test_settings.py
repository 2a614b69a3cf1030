"""Tests for settings loading and the conf() lookup order"""
import json

from config import conf
from settings import SettingsManager


def test_defaults_without_file(tmp_path):
    manager = SettingsManager(tmp_path / "missing.json")

    assert manager.get("engine.mode") == "hybrid"
    assert manager.get("engine.debounce_seconds") == 0.3
    assert manager.get("favorites.ttl_seconds") == 300.0
    assert manager.get("unknown.key", "fallback") == "fallback"


def test_values_are_validated(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "engine.mode": "stream",
        "engine.poll_interval": "0.1",
        "catalog.search_limit": "10",
        "debug.log_to_console": "false",
        "custom.flag": 1,
    }))

    manager = SettingsManager(path)

    assert manager.get("engine.mode") == "hybrid"
    assert manager.get("engine.poll_interval") == 0.5
    assert manager.get("catalog.search_limit") == 10
    assert manager.get("debug.log_to_console") is False
    assert manager.get("custom.flag") == 1


def test_invalid_json_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    assert SettingsManager(path).get("engine.player") == "Music"


def test_env_overrides_settings(monkeypatch):
    monkeypatch.setenv("ENGINE_DEBOUNCE_SECONDS", "1.5")
    monkeypatch.setenv("ENGINE_MODE", "poll")

    assert conf("engine.debounce_seconds") == 1.5
    assert conf("engine.mode") == "poll"
    assert conf("no.such.key", "default") == "default"
