#!/usr/bin/env python3
"""Command-line entrypoint for running a bridge scan from a source checkout."""

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from bridge_scanner.cli import main  # noqa: E402

if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
