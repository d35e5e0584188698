# cli.py
# Description: Command line entry point for running and inspecting sync on a field device
#
# Imports
import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
from rich.console import Console
from rich.table import Table
#
# Local Imports
from cabinetpm_sync.config import SyncSettings, load_settings
from cabinetpm_sync.Logging_Config import configure_logging
from cabinetpm_sync.Sync.Sync_Coordinator import SyncCoordinator
#
########################################################################################################################
#
# Functions:

COMMANDS = [
    "sync", "pull", "push", "status", "device-info", "test-connection",
    "migrate", "migration-status", "orphans", "mark-all-synced", "reset",
]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cabinetpm-sync", description="CabinetPM field device sync")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run")
    parser.add_argument("--config", type=Path, default=None, help="Path to a config.toml")
    parser.add_argument("--db", type=Path, default=None, help="Local SQLite store (overrides config)")
    parser.add_argument("--central-url", default=None, help="Central sync service URL (overrides config)")
    parser.add_argument("--policy", default=None, help="Conflict policy: local_wins, remote_wins, latest_wins")
    parser.add_argument("--log-level", default=None, help="Logging level (overrides config)")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> SyncSettings:
    settings = SyncSettings.from_config(load_settings(config_path=args.config))
    if args.db:
        settings.local_db_path = args.db
    if args.central_url:
        settings.central_url = args.central_url
    if args.policy:
        settings.conflict_policy = args.policy
    if args.log_level:
        settings.log_level = args.log_level.upper()
    return settings


def run_command(coordinator: SyncCoordinator, command: str) -> Dict[str, Any]:
    if command == "sync":
        return coordinator.run_full_sync().to_dict()
    if command == "pull":
        return coordinator.run_pull_only().to_dict()
    if command == "push":
        return coordinator.run_push_only().to_dict()
    if command == "status":
        return coordinator.get_status()
    if command == "device-info":
        return coordinator.get_device_info()
    if command == "test-connection":
        return coordinator.test_connection()
    if command == "migrate":
        return coordinator.ensure_schema()
    if command == "migration-status":
        return coordinator.check_migration_status()
    if command == "orphans":
        return coordinator.detect_orphans()
    if command == "mark-all-synced":
        return coordinator.force_mark_all_synced()
    if command == "reset":
        return coordinator.reset_sync_state()
    raise ValueError(f"Unknown command: {command}")


def _render(console: Console, command: str, result: Dict[str, Any]):
    per_table = result.get("per_table")
    if command in ("sync",):
        for phase in ("pull_result", "push_result"):
            if result.get(phase):
                _render(console, phase, result[phase])
    elif isinstance(per_table, dict) and per_table:
        table = Table(title=command)
        table.add_column("table")
        columns: List[str] = []
        for entry in per_table.values():
            for key in entry:
                if key not in columns and not isinstance(entry[key], list):
                    columns.append(key)
        for column in columns:
            table.add_column(column)
        for name, entry in per_table.items():
            table.add_row(name, *["" if entry.get(c) is None else str(entry.get(c)) for c in columns])
        console.print(table)

    summary = {k: v for k, v in result.items() if k not in ("per_table", "pull_result", "push_result", "tables")}
    for key, value in summary.items():
        console.print(f"[bold]{key}[/bold]: {value}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level, settings.log_file, settings.log_rotation,
                      settings.log_retention, settings.metrics_log_file)

    try:
        coordinator = SyncCoordinator.from_settings(settings)
    except ValueError as e:
        logger.error(str(e))
        return 2

    with coordinator:
        result = run_command(coordinator, args.command)

    if args.json:
        print(json.dumps(result, indent=2, default=str))
    else:
        _render(Console(), args.command, result)
    return 0 if result.get("success", True) else 1


if __name__ == "__main__":
    sys.exit(main())

#
# End of cli.py
########################################################################################################################
