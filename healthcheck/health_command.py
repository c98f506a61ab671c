"""``vip-es health`` command: manual trigger for the same checks the job runs.

Keeps output short so it can be pasted into incident notes or health logs.
"""

import argparse
import json
import logging
from typing import List, Optional, Sequence

from vip_search.errors import ConfigurationMissing, InvalidArgument

from .health_monitor import HealthMonitor, IndexConsistencyCheck

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _parse_expectation(raw: str) -> tuple:
    slug, sep, count = raw.partition("=")
    if not sep or not slug.strip() or not count.strip().isdigit():
        raise InvalidArgument(f"expected SLUG=COUNT, got {raw!r}")
    return slug.strip(), int(count)


class HealthCommand:
    """Manual health checks against the VIP search cluster."""

    def __init__(self, monitor: HealthMonitor, out=print):
        self.monitor = monitor
        self.out = out

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(prog="vip-es health", description="VIP search health checks")
        sub = parser.add_subparsers(dest="action", required=True)

        check = sub.add_parser("check", help="Probe cluster health once")
        check.add_argument("--json", action="store_true", help="Print the full report as JSON")

        counts = sub.add_parser("validate-counts", help="Compare expected document counts with the index")
        counts.add_argument(
            "--expect",
            action="append",
            required=True,
            metavar="SLUG=COUNT",
            help="Expected document count for an index kind (repeatable)",
        )
        counts.add_argument("--blog-id", type=int, default=None, help="Blog id for per-site indexes")
        return parser

    def run(self, argv: Optional[Sequence[str]] = None) -> int:
        args = self.build_parser().parse_args(argv)
        try:
            if args.action == "check":
                return self.check(as_json=args.json)
            return self.validate_counts(args.expect, blog_id=args.blog_id)
        except ConfigurationMissing as exc:
            self.out(f"CONFIGURATION ERROR: {exc}")
            return EXIT_CONFIG
        except InvalidArgument as exc:
            self.out(f"ERROR: {exc}")
            return EXIT_FAILED

    def check(self, as_json: bool = False) -> int:
        report = self.monitor.check()
        if as_json:
            self.out(json.dumps(report.to_dict(), indent=2))
        else:
            self.out(report.summary())
        return EXIT_OK if report.ok else EXIT_FAILED

    def validate_counts(self, expectations: List[str], blog_id: Optional[int] = None) -> int:
        checks = []
        for raw in expectations:
            slug, count = _parse_expectation(raw)
            checks.append(IndexConsistencyCheck(slug=slug, expected_count=lambda c=count: c, blog_id=blog_id))

        inconsistencies = self.monitor.validate_counts(checks)
        if not inconsistencies:
            self.out(f"Index counts OK ({len(checks)} checked)")
            return EXIT_OK
        for item in inconsistencies:
            self.out(
                f"Inconsistency in {item['index']}: expected={item['expected']} "
                f"actual={item['actual']} diff={item['diff']}"
            )
        return EXIT_FAILED
