"""Helper script to generate the Cloud Scheduler command for the daily sync."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass

DEFAULT_REGION = "asia-east1"
DEFAULT_SCHEDULE = "0 4 * * *"
DEFAULT_TIME_ZONE = "Asia/Shanghai"


@dataclass
class SchedulerConfig:
    name: str
    url: str
    schedule: str
    region: str
    time_zone: str


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate Cloud Scheduler command for the deck meta sync pipeline",
    )
    parser.add_argument("--name", default="deck-meta-sync", help="Scheduler job name")
    parser.add_argument("--url", required=True, help="HTTP endpoint of the run_pipeline function")
    parser.add_argument("--schedule", default=DEFAULT_SCHEDULE, help="Cron schedule (default: 0 4 * * *)")
    parser.add_argument(
        "--time-zone",
        default=DEFAULT_TIME_ZONE,
        help="Cron schedule time zone (default: Asia/Shanghai)",
    )
    parser.add_argument("--region", default=DEFAULT_REGION, help="GCP region for the scheduler job")
    parser.add_argument(
        "--mode",
        action="append",
        choices=("standard", "wild"),
        help="Mode to include in the request body (can be repeated; default: both)",
    )
    parser.add_argument(
        "--description",
        default="Daily deck meta statistics sync",
        help="Optional scheduler job description",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cmd = build_command(
        SchedulerConfig(
            name=args.name,
            url=args.url,
            schedule=args.schedule,
            region=args.region,
            time_zone=args.time_zone,
        ),
        description=args.description,
        modes=args.mode or ["standard", "wild"],
    )
    print(cmd)
    return 0


def build_command(config: SchedulerConfig, *, description: str, modes: list[str]) -> str:
    body = json.dumps({"modes": modes})
    parts = [
        "gcloud",
        "scheduler",
        "jobs",
        "create",
        "http",
        config.name,
        f"--schedule='{config.schedule}'",
        f"--time-zone='{config.time_zone}'",
        f"--uri='{config.url}'",
        "--http-method=POST",
        "--headers='Content-Type=application/json'",
        f"--message-body='{body}'",
        f"--location='{config.region}'",
        f"--description='{description}'",
    ]
    return " ".join(parts)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
