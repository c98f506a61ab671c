#!/usr/bin/env python3
"""Launcher for the VIP search health monitor.

    ./scripts/run_monitor.py            -> scheduled loop (probes every healthcheck.interval)
    ./scripts/run_monitor.py --once     -> single scheduled-style probe, exit code reflects health

Adds project root to sys.path and loads .env early, same as the other scripts.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on sys.path so standard package imports work
script_dir = Path(__file__).resolve().parent
project_root = script_dir.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

load_dotenv(dotenv_path=project_root / ".env")

from config.config_loader import load_config  # noqa: E402
from vip_search.bootstrap import VIPSearch  # noqa: E402
from vip_search.errors import ConfigurationMissing  # noqa: E402

logger = logging.getLogger("run_monitor")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="VIP search health monitor")
    parser.add_argument("--once", action="store_true", help="Run a single probe and exit")
    parser.add_argument(
        "--poll",
        type=float,
        default=1.0,
        help="Scheduler poll interval in seconds (default: 1)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase logging verbosity",
    )
    return parser


def main(argv=None):
    args = _build_arg_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigurationMissing as e:
        print(f"CONFIGURATION ERROR: {e}")
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        search = VIPSearch(config)
    except ConfigurationMissing as e:
        logger.error("Cannot start: %s", e)
        return 2

    if args.once:
        report = search.monitor.run_probe()
        if report is None:
            logger.info("Health checks are disabled for this environment")
            return 0
        return 0 if report.ok else 1

    if not search.init():
        logger.info("Nothing to schedule; exiting")
        return 0
    # Standalone runner: the process itself is the host, so it is ready now
    search.startup.mark_ready()
    search.scheduler.run_forever(poll_interval=args.poll)
    return 0


if __name__ == "__main__":
    sys.exit(main())
