"""Module entrypoint for ``python -m novelpilot``."""

from __future__ import annotations

import sys

from novelpilot.cli import main

if __name__ == "__main__":
    sys.exit(main())
