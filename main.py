"""Application entry point — ``python main.py <command>``."""

from __future__ import annotations

import sys

from kaguya.cli import main

if __name__ == "__main__":
    sys.exit(main())
