from __future__ import annotations

import sys
from typing import Any
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = ROOT / "tests"
for p in (SRC, TESTS):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "browser: end-to-end tests that launch a real Chromium (set CAPTURE_BROWSER_TESTS=1)",
    )
