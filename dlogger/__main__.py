"""Command line helpers: locate today's log file or append an entry to it."""
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from dlogger.core.config import get_settings
from dlogger.core.log import get_logger, init_logging, set_level
from dlogger.sink import Logger

LOGGER = get_logger("dlogger.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dlogger", description="Inspect or append to the daily call log.")
    parser.add_argument("--log-dir", type=Path, help="Directory holding the daily log files.")
    parser.add_argument("--verbose", action="store_true", help="Show diagnostics on stderr.")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("path", help="Print the path of today's log file.")
    write = subparsers.add_parser("write", help="Append one tagged entry to today's log file.")
    write.add_argument("tag", help="Text shown before the message, e.g. '(Account.withdraw) return'.")
    write.add_argument("message", help="Message to log.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    init_logging(level=settings.diagnostics_level)
    if args.verbose:
        set_level("DEBUG")

    config = settings.logger_config()
    if args.log_dir is not None:
        config = replace(config, local_path=args.log_dir)
    sink = Logger(config)

    if args.command == "path":
        print(sink.log_file)
        return 0

    try:
        sink.log(args.message, args.tag)
    finally:
        sink.close()
    LOGGER.info("Appended entry to %s", sink.log_file)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
