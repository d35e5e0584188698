# config.py
# Description: TOML configuration for the sync engine
#
# Imports
import copy
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
import toml
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import SYNC_TABLE_ORDER
#
########################################################################################################################
#
# Functions:

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "cabinetpm_sync" / "config.toml"

ENV_CENTRAL_URL = "CABINETPM_SYNC_CENTRAL_URL"
ENV_DB_PATH = "CABINETPM_SYNC_DB_PATH"
ENV_API_TOKEN = "CABINETPM_SYNC_API_TOKEN"

CONFIG_TOML_CONTENT = """
# Configuration for cabinetpm_sync
# This file is created with defaults on first run. Values here override the built-in defaults.

[general]
log_level = "INFO"

[logging]
# Leave empty to log to stderr only
log_file = ""
log_rotation = "10 MB"
log_retention = "14 days"
metrics_log_file = ""

[database]
# Local SQLite store of this field device
local_db_path = "~/.local/share/cabinetpm/cabinetpm.db"

[central]
# Base URL of the central sync service, e.g. "https://cabinetpm.example.com"
url = ""
api_token = ""
connect_timeout_seconds = 10.0
request_timeout_seconds = 45.0

[sync]
# One of: local_wins, remote_wins, latest_wins
conflict_policy = "local_wins"
table_timeout_seconds = 120.0
# Leave empty to sync every table, in the default order
tables = []
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}")
    DEFAULT_CONFIG_FROM_TOML = {}


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    overrides = {
        ENV_CENTRAL_URL: ("central", "url"),
        ENV_API_TOKEN: ("central", "api_token"),
        ENV_DB_PATH: ("database", "local_db_path"),
    }
    for env_name, (section, key) in overrides.items():
        value = os.environ.get(env_name)
        if value:
            config.setdefault(section, {})[key] = value
            logger.debug(f"Config override from environment: [{section}].{key} <- ${env_name}")
    return config


_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(force_reload: bool = False, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads settings from ~/.config/cabinetpm_sync/config.toml (or `config_path`).
    If the file doesn't exist, it's created with default values.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload and config_path is None:
        return _CONFIG_CACHE

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    loaded_config = _apply_env_overrides(loaded_config)
    if config_path is None:
        _CONFIG_CACHE = loaded_config
    return loaded_config


def save_setting(section: str, key: str, value: Any, config_path: Optional[Path] = None) -> bool:
    """Writes one value into the user config file and refreshes the cache."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    try:
        current: Dict[str, Any] = {}
        if path.exists():
            with open(path, "rb") as f:
                current = tomllib.load(f)
        current.setdefault(section, {})[key] = value
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(current, f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.error(f"Could not save [{section}].{key} to {path}: {e}")
        return False
    logger.info(f"Saved [{section}].{key} to {path}")
    if config_path is None:
        load_settings(force_reload=True)
    return True


def get_sync_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    section_data = load_settings().get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


@dataclass
class SyncSettings:
    local_db_path: Path
    central_url: str = ""
    api_token: Optional[str] = None
    connect_timeout: float = 10.0
    request_timeout: float = 45.0
    table_timeout_seconds: float = 120.0
    conflict_policy: str = "local_wins"
    sync_tables: List[str] = field(default_factory=lambda: list(SYNC_TABLE_ORDER))
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_rotation: str = "10 MB"
    log_retention: str = "14 days"
    metrics_log_file: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SyncSettings":
        general = config.get("general", {}) or {}
        logging_cfg = config.get("logging", {}) or {}
        database = config.get("database", {}) or {}
        central = config.get("central", {}) or {}
        sync = config.get("sync", {}) or {}

        raw_db_path = database.get("local_db_path") or DEFAULT_CONFIG_FROM_TOML["database"]["local_db_path"]
        tables = sync.get("tables") or list(SYNC_TABLE_ORDER)
        unknown = [t for t in tables if t not in SYNC_TABLE_ORDER]
        if unknown:
            raise ValueError(f"Unknown tables in [sync].tables: {', '.join(unknown)}")

        return cls(
            local_db_path=Path(os.path.expanduser(str(raw_db_path))),
            central_url=str(central.get("url") or ""),
            api_token=central.get("api_token") or None,
            connect_timeout=float(central.get("connect_timeout_seconds", 10.0)),
            request_timeout=float(central.get("request_timeout_seconds", 45.0)),
            table_timeout_seconds=float(sync.get("table_timeout_seconds", 120.0)),
            conflict_policy=str(sync.get("conflict_policy", "local_wins")),
            sync_tables=[t for t in SYNC_TABLE_ORDER if t in tables],
            log_level=str(general.get("log_level", "INFO")).upper(),
            log_file=logging_cfg.get("log_file") or None,
            log_rotation=str(logging_cfg.get("log_rotation", "10 MB")),
            log_retention=str(logging_cfg.get("log_retention", "14 days")),
            metrics_log_file=logging_cfg.get("metrics_log_file") or None,
        )

    @classmethod
    def load(cls, force_reload: bool = False, config_path: Optional[Path] = None) -> "SyncSettings":
        return cls.from_config(load_settings(force_reload=force_reload, config_path=config_path))

#
# End of config.py
########################################################################################################################
