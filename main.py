# main.py

"""Entry point for the rivalwatch competitor monitor (headless CLI)."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Coroutine
from typing import Any

from rich.console import Console

from rivalwatch.config.logging_config import setup_logging
from rivalwatch.errors import InvalidCheckRequest, RivalwatchError

logger = logging.getLogger("rivalwatch.main")

EXIT_FAILURE = 1
EXIT_INVALID_REQUEST = 2


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="rivalwatch",
        description="Competitor website change detection and menu diffing.",
    )
    parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help="Page to check. Required for change checks and snapshots.",
    )
    parser.add_argument(
        "-c",
        "--competitor",
        default=None,
        dest="competitor_id",
        help="Competitor ID the page belongs to.",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--snapshot",
        action="store_true",
        default=False,
        help="Only take and store a snapshot of URL.",
    )
    mode.add_argument(
        "--menu",
        action="store_true",
        default=False,
        help="Diff menus of the configured competitors (or URL).",
    )
    mode.add_argument(
        "--updates",
        action="store_true",
        default=False,
        help="List recorded update events.",
    )
    mode.add_argument(
        "--overview",
        default=None,
        metavar="ID",
        help="Show changes and snapshots for one competitor.",
    )
    mode.add_argument(
        "--stats",
        action="store_true",
        default=False,
        help="Show dashboard statistics.",
    )
    mode.add_argument(
        "--clear",
        action="store_true",
        default=False,
        help="Delete all monitoring data.",
    )

    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--db",
        default=None,
        dest="db_path",
        help="SQLite database path (default: data/monitoring.db).",
    )
    parser.add_argument(
        "--competitors",
        default=None,
        dest="competitors_path",
        help="JSON competitor list (default: data/competitors.json).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Also log INFO messages to stderr.",
    )
    return parser


def _run(command: Coroutine[Any, Any, int]) -> int:
    """Run a CLI coroutine and map failures to exit codes."""
    try:
        return asyncio.run(command)
    except InvalidCheckRequest as exc:
        logger.warning("Invalid request: %s", exc)
        Console(stderr=True).print(f"[red]Invalid request: {exc}[/red]")
        return EXIT_INVALID_REQUEST
    except RivalwatchError as exc:
        logger.error("Command failed: %s", exc, exc_info=True)
        return EXIT_FAILURE


def _dispatch(args: argparse.Namespace) -> Coroutine[Any, Any, int] | None:
    from rivalwatch.cli import runner

    fmt = args.output_format
    if args.menu:
        return runner.cli_check_menus(
            args.competitor_id,
            args.url,
            fmt,
            args.db_path,
            args.competitors_path,
        )
    if args.updates:
        return runner.cli_updates(args.competitor_id, fmt, args.db_path)
    if args.overview is not None:
        return runner.cli_overview(args.overview, fmt, args.db_path)
    if args.stats:
        return runner.cli_stats(fmt, args.db_path)
    if args.clear:
        return runner.cli_clear(args.db_path)
    if args.url is None:
        return None
    if args.snapshot:
        return runner.cli_snapshot(
            args.url, args.competitor_id or "", fmt, args.db_path,
        )
    return runner.cli_check_changes(
        args.url, args.competitor_id or "", fmt, args.db_path,
    )


def main() -> None:
    """Parse arguments and route to the matching CLI command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(verbose=args.verbose)
    logger.info("rivalwatch starting, log file: %s", log_file)

    command = _dispatch(args)
    if command is None:
        parser.print_help(sys.stderr)
        sys.exit(EXIT_INVALID_REQUEST)

    sys.exit(_run(command))


if __name__ == "__main__":
    main()
