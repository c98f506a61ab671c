#!/usr/bin/env python3
"""``vip-es health`` entry point: manual cluster probe / index count validation.

    ./scripts/check_es.py check [--json]
    ./scripts/check_es.py validate-counts --expect post=1200 --blog-id 7

Runs regardless of the health-check enablement policy; it is the manual
trigger for the same checks the scheduled job performs.
"""
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

load_dotenv(dotenv_path=project_root / ".env")

from config.config_loader import load_config  # noqa: E402
from vip_search.bootstrap import VIPSearch  # noqa: E402
from vip_search.errors import ConfigurationMissing  # noqa: E402


def main(argv=None):
    try:
        config = load_config()
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        search = VIPSearch(config, with_cli=True)
    except ConfigurationMissing as e:
        print(f"CONFIGURATION ERROR: {e}")
        return 2
    return search.health_command.run(argv)


if __name__ == '__main__':
    sys.exit(main())
