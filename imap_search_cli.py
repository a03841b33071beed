#!/usr/bin/env python3
"""
IMAP search step runner.

Usage:
  1) Put the step fields (imaphost, searchsubject, ...) in step.json
  2) Set env vars IMAP_USER/IMAP_PASS or edit .env file
  3) Run: python imap_search_cli.py --verbose
"""

import sys
from imap_search.cli import main

if __name__ == "__main__":
    sys.exit(main())
