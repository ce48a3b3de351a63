"""
Streak Engine — Cron Trigger
==============================

Runs one daily streak job from a scheduler (cron, Kubernetes CronJob, ...):

    python -m streak_engine                      # yesterday relative to now
    python -m streak_engine --now 2024-01-12T07:00:00Z

Prints the JobReport as JSON. Exit codes: 0 success, 1 some entities failed,
2 configuration error (nothing was run).
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

from streak_engine.config import settings
from streak_engine.exceptions import ConfigurationError
from streak_engine.main import setup_logging
from streak_engine.services.streak_job import run_daily_streak_job

logger = logging.getLogger("streak_engine.cli")

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def parse_instant(value: str) -> datetime:
    try:
        # fromisoformat() does not accept a trailing Z before Python 3.11
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 instant: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streak_engine",
        description="Run the daily streak job once.",
    )
    parser.add_argument(
        "--now",
        type=parse_instant,
        default=None,
        help="Reference instant (ISO 8601); defaults to the current time",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        report = asyncio.run(run_daily_streak_job(settings, now=args.now))
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e.message)
        return EXIT_CONFIG_ERROR

    print(report.model_dump_json(indent=2))
    return EXIT_OK if report.success else EXIT_PARTIAL_FAILURE


if __name__ == "__main__":
    sys.exit(main())
