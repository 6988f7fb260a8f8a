#!/usr/bin/env python3
"""Convenience runner for the expedition route tool.

Usage:
    python run.py plan expedition.json --mode walking
    python run.py debrief expedition.json --map debrief.html
"""
import logging
import sys

from expedition_route.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
