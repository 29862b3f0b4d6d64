from __future__ import annotations

import argparse
import sys

from daemon_console.app import run_console, wait_for_keypress
from daemon_console.reporting import ConsoleReporter, configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Daemon console: client-credentials flow against Microsoft Graph and a To-Do API"
    )
    parser.add_argument(
        "--config", default="appsettings.json", help="Path to the appsettings.json file"
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Exit without waiting for a keypress (for scheduled runs)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Console output format",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", action="store_true", help="Log diagnostics to stderr")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(verbose=args.verbose)
    reporter = ConsoleReporter(
        json_output=args.log_format == "json",
        color=False if args.no_color else None,
    )
    wait = (lambda: None) if args.no_wait else wait_for_keypress
    sys.exit(run_console(args.config, reporter, wait=wait))


if __name__ == "__main__":
    main()
