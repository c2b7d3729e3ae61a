#!/usr/bin/env python3
"""CLI wrapper for the transfer tool."""

from __future__ import annotations

import sys

from xfer_tool.main import main


if __name__ == "__main__":
    sys.exit(main())
