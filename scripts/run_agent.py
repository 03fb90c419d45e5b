#!/usr/bin/env python3
"""Entry point: run the beacon agent (data-plane :9001 + control-plane :3001 by default).

Usage: python scripts/run_agent.py [--config config/config.yaml] [--api-port N] [--orchestrator-port N] [--debug]
Exits non-zero if either port cannot be bound; nothing is killed to free it."""

import os
import sys

# Project root: always resolve relative to script location, not cwd
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)
os.chdir(_PROJECT_ROOT)  # Ensure config paths resolve from project root

from beacon.app.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
