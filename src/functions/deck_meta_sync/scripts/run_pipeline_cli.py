"""CLI entry point for the deck meta sync pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.deck_meta_sync.core.errors import LockContentionError, MetaSyncError
from src.functions.deck_meta_sync.core.orchestration.config_loader import build_pipeline_config
from src.functions.deck_meta_sync.core.orchestration.factory import build_services, open_runner

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the deck meta sync pipeline.")
    parser.add_argument(
        "--mode",
        "-m",
        action="append",
        choices=("standard", "wild"),
        help="Mode to sync (can be repeated; default: META_MODES or both)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Write to an in-memory store instead of Supabase")
    parser.add_argument("--ladder-config", help="Path to an alternative ladders.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--output",
        choices=("text", "json"),
        default="text",
        help="Output format for results (default: text)",
    )
    return parser.parse_args(argv)


async def _run(services, modes: List[str]):
    async with open_runner(services) as runner:
        try:
            return await runner.run(modes)
        except MetaSyncError:
            if runner.last_report is None:
                raise
            return runner.last_report


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env()
    setup_logging(level="DEBUG" if args.verbose else None)

    try:
        config = build_pipeline_config(
            {
                "modes": args.mode,
                "dry_run": True if args.dry_run else None,
                "ladder_config": args.ladder_config,
            }
        )
        services = build_services(config)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 1

    try:
        report = asyncio.run(_run(services, config.modes))
    except LockContentionError as exc:
        LOG.error("%s", exc)
        return 3

    output = report.to_dict()
    if args.output == "json":
        json.dump(output, sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
    else:
        _print_summary(output)

    return 0 if report.status == "success" else 2


def _print_summary(output: Dict[str, object]) -> None:
    LOG.info(
        "Run %s %s in %ss; promoted: %s",
        output.get("run_id"),
        output.get("status"),
        output.get("duration_seconds"),
        ", ".join(output.get("promoted") or []) or "none",
    )
    for table, count in (output.get("record_counts") or {}).items():
        LOG.info("  %s: %s records", table, count)
    failures = output.get("failed_targets") or []
    if failures:
        LOG.warning("Encountered %s failed targets", len(failures))
        for entry in failures:
            LOG.warning("[%s] %s - %s", entry.get("stage"), entry.get("target"), entry.get("message"))
    untranslated = output.get("untranslated_names") or []
    if untranslated:
        LOG.warning("Untranslated names: %s", ", ".join(untranslated))
    if output.get("error"):
        LOG.error("Error: %s", output.get("error"))


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())
