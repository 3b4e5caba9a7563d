#!/usr/bin/env python3
"""Command line entry point for the Kiwix backup."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from backup_core.__version__ import __version__
from backup_core.acquire.engine import AcquisitionEngine
from backup_core.config import BackupConfig, load_config
from backup_core.exceptions import (
    ConfigValidationError,
    RunLockedError,
    SourceNotFoundError,
    YamlParseError,
)
from backup_core.locking import run_lock
from backup_core.logging_config import add_logging_args, configure_logging
from backup_core.orchestrator import (
    EXIT_ACQUISITION_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_LOCKED,
    EXIT_OK,
    BackupOrchestrator,
)
from backup_core.preflight import run_preflight
from backup_core.quota import QuotaEnforcer
from backup_core.utils.sizes import format_size, parse_size

logger = logging.getLogger(__name__)

COMMAND_RUN = "run"
COMMAND_RESOLVE = "resolve"
COMMAND_PRUNE = "prune"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kiwix-backup",
        description="Monthly Kiwix/Wikipedia archive backup with storage rotation.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: $KIWIX_BACKUP_CONFIG or built-in defaults).",
    )
    add_logging_args(parser)
    sub = parser.add_subparsers(dest="command")
    sub.add_parser(COMMAND_RUN, help="Run the full backup cycle (default).")
    sub.add_parser(COMMAND_RESOLVE, help="Print the URL of the newest available archive.")
    prune = sub.add_parser(COMMAND_PRUNE, help="Enforce the storage quota only.")
    prune.add_argument(
        "--headroom",
        default="0",
        help="Bytes to keep free below the quota, e.g. 100GiB (default: 0).",
    )
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = COMMAND_RUN
    if args.command == COMMAND_PRUNE:
        try:
            args.headroom_bytes = parse_size(args.headroom)
        except ValueError as exc:
            parser.error(f"--headroom: {exc}")
    return args


def _run(config: BackupConfig) -> int:
    with run_lock(config.lock_file):
        run_preflight(config)
        report = BackupOrchestrator.from_config(config).run()
    return report.exit_code


def _resolve(config: BackupConfig) -> int:
    engine = AcquisitionEngine.from_config(config)
    try:
        resolved = engine.resolver.find_newest(config.archive.basename)
    except SourceNotFoundError as exc:
        logger.error("%s", exc.message)
        return EXIT_ACQUISITION_FAILED
    print(resolved.url)
    return EXIT_OK


def _prune(config: BackupConfig, headroom_bytes: int) -> int:
    with run_lock(config.lock_file):
        report = QuotaEnforcer.from_config(config).enforce(headroom_bytes)
    logger.info(
        "Evicted %d archive(s); storage now %s of %s",
        report.evicted_count,
        format_size(report.final_bytes),
        format_size(report.max_bytes),
    )
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
    except (ConfigValidationError, YamlParseError) as exc:
        configure_logging(level=args.log_level, fmt=args.log_format, force=True)
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    try:
        configure_logging(
            level=args.log_level,
            fmt=args.log_format,
            log_file=config.log_file,
            force=True,
        )
    except OSError as exc:
        configure_logging(level=args.log_level, fmt=args.log_format, force=True)
        logger.error("Cannot open log file %s: %s", config.log_file, exc)
        return EXIT_CONFIG_ERROR

    try:
        if args.command == COMMAND_RESOLVE:
            return _resolve(config)
        if args.command == COMMAND_PRUNE:
            return _prune(config, args.headroom_bytes)
        return _run(config)
    except ConfigValidationError as exc:
        logger.error("Preflight failed: %s", exc)
        return EXIT_CONFIG_ERROR
    except RunLockedError as exc:
        logger.error("%s; exiting", exc.message)
        return EXIT_LOCKED


if __name__ == "__main__":
    sys.exit(main())
