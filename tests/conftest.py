import os
import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session):
    # Ensure src/ and the test helpers are importable without installation
    root = Path(__file__).resolve().parents[1]
    for path in (root / "src", root / "tests"):
        if str(path) not in sys.path:
            sys.path.insert(0, str(path))
    os.environ.setdefault("HEADLESS", "true")


def pytest_collection_modifyitems(config, items):
    if os.getenv("RUN_BROWSER_TESTS"):
        return
    skip_browser = pytest.mark.skip(reason="set RUN_BROWSER_TESTS=1 to drive a real browser")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_browser)
