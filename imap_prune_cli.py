#!/usr/bin/env python3
"""
IMAP Mail Prune - command line launcher

Runs the installed `imap-prune` entry point from a source checkout.

Usage:
  1) Set env vars IMAP_USER/IMAP_PASS or edit .env file
  2) Adjust provider and targets in config.json
  3) Run: python imap_prune_cli.py [--permanent] [--folder NAME --address ADDR ...]
"""

import sys
from imap_prune.cli import main

if __name__ == "__main__":
    sys.exit(main())
