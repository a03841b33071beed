"""
Command Line Interface for IMAP Search.

Runs one search step loaded from a JSON step file and prints its result.
"""

import argparse
import json
import logging
import sys

from . import __version__
from .config import ConfigManager
from .email_processor import EmailProcessor
from .errors import StepDecodeError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="imap-search", description="Find a mail on an IMAP server")
    parser.add_argument("--config", default="step.json", help="step file (default: step.json)")
    parser.add_argument("--local-config", default="step.local.json",
                        help="local overrides (default: step.local.json)")
    parser.add_argument("--verbose", action="store_true", help="print progress and debug logging")
    return parser


def main(argv=None):
    """CLI entry point for IMAP Search."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.verbose:
        print(f"IMAP Search v{__version__}")
        print("=" * 40)

    try:
        config_manager = ConfigManager(args.config, args.local_config, verbose=args.verbose)
        config = config_manager.get_search_config()
    except StepDecodeError as e:
        print(f"[!] Invalid step configuration: {e}")
        return 2

    if args.verbose:
        print(f"[i] Searching {config.mbox or 'INBOX'} on {config.imap_host}")

    result = EmailProcessor(config).run()
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))

    if args.verbose:
        status = "found" if result.passed else f"failed ({result.err})"
        print(f"\n[done] Search {status} in {result.time_seconds:.2f}s")

    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main())
