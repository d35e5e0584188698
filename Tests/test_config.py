# test_config.py
#
# Imports
from pathlib import Path
#
# Third-Party Imports
import pytest
import tomllib
#
# Local Imports
from cabinetpm_sync import config
from cabinetpm_sync.config import (
    CONFIG_TOML_CONTENT,
    SyncSettings,
    deep_merge_dicts,
    load_settings,
    save_setting,
)
from cabinetpm_sync.Constants import SYNC_TABLE_ORDER
#
########################################################################################################################
#
# Functions:

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (config.ENV_CENTRAL_URL, config.ENV_API_TOKEN, config.ENV_DB_PATH):
        monkeypatch.delenv(name, raising=False)


def test_default_content_parses():
    parsed = tomllib.loads(CONFIG_TOML_CONTENT)
    assert parsed["sync"]["conflict_policy"] == "local_wins"
    assert parsed["central"]["connect_timeout_seconds"] == 10.0


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    merged = deep_merge_dicts(base, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
    assert base["a"]["y"] == 2


def test_missing_file_is_created_with_defaults(tmp_path):
    path = tmp_path / "nested" / "config.toml"
    settings = load_settings(config_path=path)
    assert path.exists()
    assert settings["sync"]["table_timeout_seconds"] == 120.0


def test_user_file_overrides_defaults(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[central]\nurl = "https://central.example.test"\n\n[sync]\nconflict_policy = "latest_wins"\n')
    settings = load_settings(config_path=path)
    assert settings["central"]["url"] == "https://central.example.test"
    assert settings["central"]["request_timeout_seconds"] == 45.0
    assert settings["sync"]["conflict_policy"] == "latest_wins"


def test_broken_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[sync\nthis is not toml")
    assert load_settings(config_path=path)["sync"]["conflict_policy"] == "local_wins"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv(config.ENV_CENTRAL_URL, "https://env.example.test")
    monkeypatch.setenv(config.ENV_DB_PATH, str(tmp_path / "env.db"))
    settings = SyncSettings.load(config_path=tmp_path / "config.toml")
    assert settings.central_url == "https://env.example.test"
    assert settings.local_db_path == tmp_path / "env.db"


def test_save_setting_round_trip(tmp_path):
    path = tmp_path / "config.toml"
    load_settings(config_path=path)
    assert save_setting("sync", "conflict_policy", "remote_wins", config_path=path) is True
    assert load_settings(config_path=path)["sync"]["conflict_policy"] == "remote_wins"


def test_sync_settings_from_config_defaults():
    settings = SyncSettings.from_config({})
    assert settings.sync_tables == list(SYNC_TABLE_ORDER)
    assert settings.conflict_policy == "local_wins"
    assert settings.central_url == ""
    assert isinstance(settings.local_db_path, Path)
    assert "~" not in str(settings.local_db_path)


def test_sync_settings_keeps_processing_order():
    settings = SyncSettings.from_config({"sync": {"tables": ["nodes", "users", "customers"]}})
    assert settings.sync_tables == ["users", "customers", "nodes"]


def test_sync_settings_rejects_unknown_tables():
    with pytest.raises(ValueError, match="invoices"):
        SyncSettings.from_config({"sync": {"tables": ["users", "invoices"]}})


def test_sync_settings_reads_every_section():
    settings = SyncSettings.from_config({
        "general": {"log_level": "debug"},
        "logging": {"log_file": "/tmp/sync.log", "metrics_log_file": ""},
        "central": {"url": "https://c.example.test", "api_token": "t", "connect_timeout_seconds": 2,
                    "request_timeout_seconds": 5},
        "sync": {"table_timeout_seconds": 30},
    })
    assert settings.log_level == "DEBUG"
    assert settings.log_file == "/tmp/sync.log"
    assert settings.metrics_log_file is None
    assert settings.api_token == "t"
    assert settings.connect_timeout == 2.0
    assert settings.request_timeout == 5.0
    assert settings.table_timeout_seconds == 30.0
