#!/usr/bin/env python3
"""Command line entry point: download the datasets of a JSONL record file."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from spatial_collector.config import load_settings
from spatial_collector.exceptions import (
    ConfigValidationError,
    LoginRequiredError,
    RecordValidationError,
    YamlParseError,
)
from spatial_collector.logging_config import add_logging_args, configure_logging
from spatial_collector.pipeline import get_data
from spatial_collector.providers.sentinel import HUBS
from spatial_collector.session import SessionStore
from spatial_collector.utils.io import dump_jsonl, read_jsonl_list, write_jsonl

logger = logging.getLogger(__name__)

COMMAND_GET_DATA = "get-data"

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_CONFIG = 2


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Spatial data collector CLI.")
    sub = parser.add_subparsers(dest="command")
    get = sub.add_parser(COMMAND_GET_DATA, help="Download the datasets of a record file.")
    get.add_argument("--records", required=True, help="JSONL record file (.gz/.zst accepted).")
    get.add_argument("--dir-out", default=None, help="Existing output base directory.")
    get.add_argument("--config", default=None, help="Settings YAML file.")
    get.add_argument(
        "--hub",
        default=None,
        choices=["auto", *HUBS],
        help="Copernicus hub for Sentinel records (default: from settings, else auto).",
    )
    get.add_argument(
        "--no-md5-check",
        dest="md5_check",
        action="store_false",
        default=None,
        help="Skip checksum verification.",
    )
    get.add_argument("--force", action="store_true", help="Accepted for compatibility.")
    get.add_argument("--workers", type=int, default=None, help="Records downloaded concurrently.")
    get.add_argument("--output", default=None, help="Result JSONL file (default: stdout).")
    add_logging_args(get)
    return parser.parse_args(argv)


def _run_get_data(args: argparse.Namespace) -> int:
    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    session = SessionStore.from_settings(settings.logins)
    try:
        records = read_jsonl_list(Path(args.records).expanduser())
    except (OSError, ValueError) as exc:
        logger.error("Cannot read records from %s: %s", args.records, exc)
        return EXIT_USAGE
    if not records:
        logger.warning("No records in %s", args.records)
    result = get_data(
        records,
        dir_out=args.dir_out,
        md5_check=args.md5_check,
        force=args.force,
        hub=args.hub,
        session=session,
        settings=settings,
        workers=args.workers,
    )
    rows = result.to_rows()
    if args.output:
        write_jsonl(Path(args.output).expanduser(), rows)
        logger.info("Wrote %d record(s) to %s", len(rows), args.output)
    else:
        dump_jsonl(rows)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    if not args.command:
        print(f"No command specified. Use '{COMMAND_GET_DATA}'.", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(level=args.log_level, fmt=args.log_format)
    try:
        return _run_get_data(args)
    except (LoginRequiredError, ConfigValidationError, YamlParseError) as exc:
        logger.error("%s", exc.message, extra=exc.as_log_fields())
        return EXIT_CONFIG
    except RecordValidationError as exc:
        logger.error("%s", exc.message, extra=exc.as_log_fields())
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
