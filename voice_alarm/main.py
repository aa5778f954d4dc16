#!/usr/bin/env python3
"""Voice Alarm application entry point.

This module provides a unified entry point for both interfaces:
- CLI: Command-line interface, including the foreground alarm scheduler
- Web: RESTful HTTP API

Usage:
    python -m voice_alarm.main cli list-alarms            # Use CLI
    python -m voice_alarm.main cli new-alarm --time 07:30
    python -m voice_alarm.main cli run                    # Fire alarms until Ctrl-C
    python -m voice_alarm.main web [--port 8080]          # Start web server
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the unified argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Voice Alarm - Alarm clock with spoken messages and custom audio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m voice_alarm.main cli list-alarms
  python -m voice_alarm.main cli new-alarm --time 07:30 --repeat weekdays
  python -m voice_alarm.main cli set-audio <id> song.mp3 --start 10 --end 40
  python -m voice_alarm.main cli run
  python -m voice_alarm.main web --port 8080
""",
    )

    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/voice-alarm/)"
    )

    subparsers = parser.add_subparsers(dest="interface", help="Interface to use")

    from voice_alarm.cli import add_cli_subparser
    add_cli_subparser(subparsers)

    from voice_alarm.web import add_web_subparser
    add_web_subparser(subparsers)

    return parser


def main() -> NoReturn:
    """Main entry point for Voice Alarm.

    Parses arguments and dispatches to the appropriate interface.
    """
    parser = create_parser()
    args = parser.parse_args()

    if args.config_dir:
        logger.info(f"Using custom config directory: {args.config_dir}")

    if args.interface == "cli":
        from voice_alarm.cli import run as run_cli
        exit_code = run_cli(args.config_dir, args)
    elif args.interface == "web":
        from voice_alarm.web import run as run_web
        exit_code = run_web(args.config_dir, args)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
