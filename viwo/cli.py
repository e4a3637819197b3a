"""
viwo.cli — Command-line entry points
=====================================

``distribute-rewards`` runs one daily distribution and prints its
summary as JSON::

    distribute-rewards                       # previous UTC day
    distribute-rewards --date 2026-03-14     # explicit day (backfill / rerun)

Exit status is 0 whenever the run finished with a handled outcome
(including "already distributed" and the other skips) and 1 on an
unhandled error.

``viwo`` runs the other periodic jobs by hand or starts the scheduler::

    viwo refresh-quality
    viwo refresh-reputation
    viwo process-unlocks
    viwo accrue-stakes
    viwo scheduler            # blocks; runs every job on its cron schedule
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date

from dotenv import load_dotenv

from viwo.config import load_config
from viwo.database.engine import create_db_engine, init_db
from viwo.services.scheduler import build_scheduler, get_scheduler_status, run_job
from viwo.wiring import Services, build_services

logger = logging.getLogger("viwo")

_COMMAND_JOBS = {
    "distribute": "distribute_rewards",
    "refresh-quality": "refresh_quality",
    "refresh-reputation": "refresh_reputation",
    "process-unlocks": "process_unlocks",
    "accrue-stakes": "accrue_stakes",
}


def _configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )


def _bootstrap(config_path: str | None) -> Services:
    """Load .env and config, connect, and build the service graph."""
    load_dotenv()
    cfg = load_config(config_path)
    engine = create_db_engine()
    init_db(engine)
    return build_services(engine, cfg)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", metavar="PATH", help="YAML config file (default: config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")


# ---------------------------------------------------------------------------
# distribute-rewards
# ---------------------------------------------------------------------------
def distribute_rewards_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="distribute-rewards",
        description="Distribute the daily VCN reward pool.",
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        metavar="YYYY-MM-DD",
        help="UTC day to reward (default: yesterday)",
    )
    _add_common(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        services = _bootstrap(args.config)
        result = services.distributor.run_daily_distribution(args.date)
    except Exception:
        logger.exception("Daily distribution failed", extra={"stage": "distribution"})
        return 1

    print(json.dumps(result.as_dict(), indent=2))
    return 0


# ---------------------------------------------------------------------------
# viwo
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="viwo", description="ViWo reward pipeline jobs.")
    sub = parser.add_subparsers(dest="command", required=True)
    for command in _COMMAND_JOBS:
        _add_common(sub.add_parser(command, help=f"run the {_COMMAND_JOBS[command]} job once"))
    _add_common(sub.add_parser("scheduler", help="run every job on its cron schedule"))
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        services = _bootstrap(args.config)
    except Exception:
        logger.exception("Startup failed", extra={"stage": "bootstrap"})
        return 1

    if args.command == "scheduler":
        scheduler = build_scheduler(services, blocking=True)
        for job in get_scheduler_status(scheduler)["jobs"]:
            logger.info("Scheduled %s (%s)", job["id"], job["trigger"])
        logger.info("Starting scheduler…")
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down gracefully…")
        return 0

    try:
        result = run_job(_COMMAND_JOBS[args.command], services)
    except Exception:
        logger.exception("Job %s failed", args.command, extra={"task": args.command})
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
