from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    root = Path(__file__).resolve().parents[1]
    if (root / "ergon").exists():
        sys.path.insert(0, str(root))
