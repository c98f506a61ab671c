import sys
from pathlib import Path

# Repo root holds config/, vip_search/ and healthcheck/ as top-level packages;
# put it on sys.path so tests run without `pip install -e .`.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
