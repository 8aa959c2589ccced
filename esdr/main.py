"""
esdr - Main entry point.

Usage:
    esdr [-h] [-v] [-r] [-d] [-f frequency] [-k keep] -m primary|secondary|cleanup -c config_file

Exit codes:
    0    run completed
    1    fatal error (bad arguments, configuration, failed external call)
    255  daemon stopped by SIGTERM/SIGINT

Invariants:
    - Configuration is validated before the repository is registered
    - The repository is registered before the first tick
    - Every ERROR line is followed by process exit
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys

import json_log_formatter

from .admin import HttpIndexAdminClient
from .config import (
    DEFAULT_FREQUENCY_SECONDS,
    DEFAULT_KEEP,
    DrConfig,
    ObservabilityConfig,
    RetentionPolicy,
    Role,
)
from .errors import ConfigurationError, EsdrError
from .marker import MarkerStore
from .probe import EventsServiceProbe
from .reconcile import ReconciliationEngine
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SIGNALLED = 255

TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser exiting with status 1 on usage errors."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {number}")
    return number


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="esdr",
        description="Manage Events Service automatic backup & restore",
    )
    parser.add_argument("-c", "--config", required=True, help="Path to config file")
    parser.add_argument(
        "-m",
        "--mode",
        required=True,
        choices=[role.value for role in Role],
        help="Run mode",
    )
    parser.add_argument("-d", "--daemon", action="store_true", help="Daemon mode. Default: false")
    parser.add_argument(
        "-f",
        "--frequency",
        type=_positive_int,
        default=DEFAULT_FREQUENCY_SECONDS,
        help=f"In daemon mode, seconds between two runs. Default: {DEFAULT_FREQUENCY_SECONDS}",
    )
    parser.add_argument(
        "-k",
        "--keep",
        type=_non_negative_int,
        default=DEFAULT_KEEP,
        help=f"In cleanup mode, number of snapshots to keep in repository. Default: {DEFAULT_KEEP}",
    )
    parser.add_argument(
        "-r",
        "--remote",
        action="store_true",
        help="Update the snapshot id file on the peer host over ssh (read-only filesystems). Default: false",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug info")
    parser.add_argument("--log-format", choices=["text", "json"], help="Log format. Default: text")
    parser.add_argument("--log-file", help="Also write log lines to this file")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="In daemon mode, skip to the next run when an external call fails instead of exiting",
    )
    return parser


def _observability(base: ObservabilityConfig, args: argparse.Namespace) -> ObservabilityConfig:
    """Apply command line overrides."""
    overrides = {}
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(base, **overrides)


def setup_logging(observability: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        observability: Logging configuration

    Raises:
        ConfigurationError: If the log file cannot be opened.
    """
    level = getattr(logging, observability.log_level.upper(), logging.INFO)
    logging.addLevelName(logging.WARNING, "WARN")

    if observability.log_format == "json":
        formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT, datefmt=TEXT_DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if observability.log_file:
        try:
            handlers.append(logging.FileHandler(observability.log_file, encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(
                f"Cannot open log file {observability.log_file}: {e}", key="log_file"
            ) from e

    for handler in handlers:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root_logger.handlers = handlers

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _install_signal_handlers(scheduler: Scheduler) -> None:
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown")
        scheduler.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)


async def run(args: argparse.Namespace) -> int:
    """Load configuration and run the requested mode.

    Returns:
        Process exit code

    Raises:
        EsdrError: On any fatal error.
    """
    role = Role(args.mode)
    config = DrConfig.from_file(args.config, role, remote=args.remote)
    setup_logging(_observability(config.observability, args))
    config.log_config()

    retention = RetentionPolicy(keep=args.keep)
    probe = EventsServiceProbe(config.node, timeout_seconds=config.timeouts.command_seconds)
    markers = MarkerStore.from_config(config)

    async with HttpIndexAdminClient(config.node.es_url, timeout=config.timeouts.http_seconds) as admin:
        engine = ReconciliationEngine(config, probe, admin, markers, retention=retention)
        scheduler = Scheduler(
            engine.tick,
            interval_seconds=args.frequency,
            keep_going=args.keep_going,
        )

        if not args.daemon:
            logger.info(f"Running {role.value} once.")
            await engine.configure_repository()
            await scheduler.run_once()
            return EXIT_OK

        logger.info(f"Running {role.value} in daemon mode (frequency = {args.frequency}s).")
        _install_signal_handlers(scheduler)
        await engine.configure_repository()
        await scheduler.run_forever()
        return EXIT_SIGNALLED if scheduler.cancelled else EXIT_OK


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        setup_logging(_observability(ObservabilityConfig.from_values({}), args))
        code = asyncio.run(run(args))
    except EsdrError as e:
        logger.error(e.message)
        code = EXIT_FAILURE
    except KeyboardInterrupt:
        code = EXIT_SIGNALLED if args.daemon else EXIT_FAILURE

    sys.exit(code)


if __name__ == "__main__":
    main()
