"""Tests for environment configuration and service wiring."""

from pathlib import Path

import pytest

from sentinel.config import Settings
from sentinel.services import build_services


def test_defaults():
    settings = Settings()
    assert settings.trend_detection_threshold == 0.75
    assert settings.virality_threshold == 1000.0
    assert settings.auto_action_threshold == 0.95
    assert settings.aggregation_interval_minutes == 5
    assert settings.data_dir == Path.home() / ".sentinel"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SENTINEL_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TREND_DETECTION_THRESHOLD", "0.6")
    monkeypatch.setenv("VIRALITY_THRESHOLD", "250")
    monkeypatch.setenv("AUTO_ACTION_THRESHOLD", "0.9")
    monkeypatch.setenv("RESPONSE_ATTEMPTS", "4")
    monkeypatch.setenv("SENTINEL_NOTIFY_WEBHOOK_URL", "https://hooks.example/alerts")

    settings = Settings.from_env()
    assert settings.data_dir == tmp_path
    assert settings.trend_detection_threshold == 0.6
    assert settings.virality_threshold == 250.0
    assert settings.auto_action_threshold == 0.9
    assert settings.response_attempts == 4
    assert settings.notify_webhook_url == "https://hooks.example/alerts"
    assert settings.queues_dir == tmp_path / "queues"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"trend_detection_threshold": 1.2},
        {"auto_action_threshold": -0.1},
        {"virality_threshold": 0},
    ],
)
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_invalid_env_threshold_rejected(monkeypatch):
    monkeypatch.setenv("AUTO_ACTION_THRESHOLD", "2")
    with pytest.raises(ValueError):
        Settings.from_env()


def test_build_services_lays_out_data_dir(tmp_path):
    services = build_services(Settings(data_dir=tmp_path))
    assert (tmp_path / "content").is_dir()
    assert (tmp_path / "review").is_dir()
    assert len(services.engine.rules()) == 5
    assert services.scheduler().interval_minutes == 5


def test_build_services_imports_rules_file(tmp_path):
    rules_file = tmp_path / "rules.yaml"
    rules_file.write_text(
        "rules:\n"
        "  - id: notify_all\n"
        "    actions:\n"
        "      - {type: notify, severity: low}\n"
    )
    services = build_services(Settings(data_dir=tmp_path / "data", rules_file=str(rules_file)))
    assert [r.id for r in services.engine.rules()] == ["notify_all"]
    assert [r.id for r in services.rule_store.rules()] == ["notify_all"]


def test_reload_rules_picks_up_store_changes(tmp_path):
    services = build_services(Settings(data_dir=tmp_path))
    version = services.engine.snapshot.version
    services.rule_store.toggle_rule("critical_self_harm", False)
    services.reload_rules()
    assert services.engine.snapshot.version == version + 1
    disabled = [r for r in services.engine.rules() if not r.enabled]
    assert [r.id for r in disabled] == ["critical_self_harm"]
