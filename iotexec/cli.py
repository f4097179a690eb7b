"""Command-line interface for iotexec."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import ExecApp
from .config import load_config

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Execute cloud-to-device commands and stream their output back",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output, including per-message diagnostics",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("start", help="Start the iotexec service (default)")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    command = args.command or "start"

    if command == "start":
        return ExecApp.start(config, verbose=args.verbose)

    if command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        print(f"command_topic = {config.command_topic}")
        print(f"response_topic = {config.response_topic}")
        return 0

    LOGGER.error("Unknown command: %s", command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
