"""Administrative commands for crash recovery and translation maintenance.

Examples:
    python admin_cli.py lock-state
    python admin_cli.py inspect decks --mode wild
    python admin_cli.py promote decks --mode standard
    python admin_cli.py cleanup matchups
    python admin_cli.py unlock
    python admin_cli.py add-translation "Aggro Paladin" "快攻圣骑士"
    python admin_cli.py repair-names --mode standard --mode wild
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.deck_meta_sync.core.admin import AdminService
from src.functions.deck_meta_sync.core.datasets import DATASETS_BY_NAME
from src.functions.deck_meta_sync.core.errors import MetaSyncError
from src.functions.deck_meta_sync.core.orchestration.factory import build_services

LOG = logging.getLogger(__name__)

MODES = ("standard", "wild")


def _add_dataset_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("dataset", choices=sorted(DATASETS_BY_NAME), help="Logical dataset name")
    parser.add_argument("--mode", "-m", choices=MODES, default="standard", help="Mode (default: standard)")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deck meta sync administration.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("lock-state", help="Show the update lock row")
    sub.add_parser("unlock", help="Force the update lock back to idle")

    inspect = sub.add_parser("inspect", help="Show staging/live/backup state of a dataset")
    _add_dataset_args(inspect)
    inspect.add_argument("--sample", type=int, default=5, help="Number of staging rows to show")

    promote = sub.add_parser("promote", help="Promote a leftover staging instance to live")
    _add_dataset_args(promote)

    cleanup = sub.add_parser("cleanup", help="Drop a leftover staging instance")
    _add_dataset_args(cleanup)

    translation = sub.add_parser("add-translation", help="Add or update a localized name")
    translation.add_argument("source_name")
    translation.add_argument("localized_name")

    repair = sub.add_parser("repair-names", help="Re-resolve localized names on live datasets")
    repair.add_argument("--mode", "-m", action="append", choices=MODES, help="Mode (can be repeated)")

    return parser.parse_args(argv)


def execute(admin: AdminService, args: argparse.Namespace) -> Any:
    if args.command == "lock-state":
        return admin.lock_state().to_dict()
    if args.command == "unlock":
        return admin.force_unlock().to_dict()
    if args.command == "inspect":
        return admin.inspect_staging(args.dataset, args.mode, args.sample).to_dict()
    if args.command == "promote":
        return {"promoted": admin.force_promote(args.dataset, args.mode)}
    if args.command == "cleanup":
        return {"dropped": admin.force_cleanup(args.dataset, args.mode)}
    if args.command == "add-translation":
        return {"translations": admin.add_translation(args.source_name, args.localized_name)}
    if args.command == "repair-names":
        return admin.repair_localized_names(args.mode or list(MODES)).to_dict()
    raise ValueError(f"unknown command {args.command}")


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env()
    setup_logging(level="DEBUG" if args.verbose else None)

    try:
        admin = AdminService(build_services())
        result = execute(admin, args)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 1
    except MetaSyncError as exc:
        LOG.error("%s failed: %s", args.command, exc)
        return 2

    json.dump(result, sys.stdout, indent=2, ensure_ascii=False, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())
