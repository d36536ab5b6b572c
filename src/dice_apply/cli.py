"""CLI command handlers for dice-apply.

Each public ``handle_*`` function corresponds to a subcommand and
encapsulates the wiring, orchestration, and terminal output for it.
``main`` parses arguments, sets up logging, dispatches, and turns an
:class:`~dice_apply.errors.ActionableError` into a message and exit
code 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from dice_apply.config import DEFAULT_SETTINGS_PATH, load_settings
from dice_apply.errors import ActionableError
from dice_apply.logging import configure_file_logging, configure_logging
from dice_apply.runner import ApplyRunner
from dice_apply.search import build_search_url

if TYPE_CHECKING:
    from dice_apply.runner import RunResult


def handle_url(args: argparse.Namespace) -> None:
    """Print the search URL built from settings."""
    settings = load_settings(args.settings)
    print(f"Search: {settings.search}")
    for page in range(1, settings.max_pages + 1):
        print(build_search_url(settings.search, settings.browser.base_url, page=page))


def handle_login(args: argparse.Namespace) -> None:
    """Open the browser for a manual login and save the session cookies.

    Runs even when a session file exists — use it to replace an expired
    session.
    """
    settings = load_settings(args.settings)
    runner = ApplyRunner(settings)

    print(f"\n{'=' * 60}")
    print("  Interactive Login")
    print(f"{'=' * 60}")
    print(f"  Browser will open: {settings.session.login_url}")
    print("  Complete login / solve any CAPTCHA in the browser.")
    print(f"{'=' * 60}\n")

    path = asyncio.run(runner.login_only())
    print(f"\nSession saved to {path}")
    print("You can now run 'run' — cookies will be loaded automatically.")


def handle_search(args: argparse.Namespace) -> None:
    """List the postings the configured search finds, without applying."""
    settings = load_settings(args.settings)
    runner = ApplyRunner(settings)

    result = asyncio.run(runner.collect_postings())

    print(f"\n{'=' * 60}")
    print(" Postings")
    print(f"{'=' * 60}")
    for i, posting in enumerate(result.postings, 1):
        print(f"{i}. [p{posting.page_number}] {posting.title}")
        print(f"   {posting.canonical_url}")
    print(f"\n {len(result.postings)} posting(s) across {result.pages_searched} page(s)")
    _print_page_failures(result)

    if result.pages_searched == 0 and result.page_failures:
        sys.exit(1)


def handle_run(args: argparse.Namespace) -> None:
    """Search, extract, and apply to every posting."""
    settings = load_settings(args.settings)
    runner = ApplyRunner(settings)

    result = asyncio.run(
        runner.run(dry_run=args.dry_run, max_runtime=args.max_runtime),
    )
    report = result.report

    print(f"\n{'=' * 60}")
    print(" Apply Run Summary")
    print(f"{'=' * 60}")
    print(f" Pages searched:  {result.pages_searched}")
    print(f" Postings found:  {len(result.postings)}")
    print(f" Applied:         {report.applied}")
    print(f" Failed:          {report.failed}")
    if args.dry_run:
        print(" (dry run — nothing was clicked)")
    print(f"{'=' * 60}\n")

    for outcome in report.outcomes:
        if outcome.failed_stage is not None:
            print(f"  ✗ {outcome.posting.title} — {outcome.failed_stage.value}: {outcome.reason}")
    _print_page_failures(result)

    report_path = Path(args.report) if args.report else _default_report_path(settings.output.report_dir)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    print(f"Report written → {report_path}")

    if result.pages_searched == 0 and result.page_failures:
        sys.exit(1)


def _default_report_path(report_dir: str) -> Path:
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return Path(report_dir) / f"apply_report_{timestamp}.json"


def _print_page_failures(result: RunResult) -> None:
    for failure in result.page_failures:
        print(f"  ! Search {failure}")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="dice-apply",
        description="Search a job board and drive its Easy apply flow through a browser",
    )
    parser.add_argument(
        "--settings",
        type=str,
        default=str(DEFAULT_SETTINGS_PATH),
        metavar="PATH",
        help=f"Settings file (default: {DEFAULT_SETTINGS_PATH})",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Also write a timestamped log file under DIR",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # -- run -----------------------------------------------------------------
    run_p = sub.add_parser("run", help="Search, then apply to every posting found")
    run_p.add_argument(
        "--dry-run",
        action="store_true",
        help="Open each apply link but click nothing",
    )
    run_p.add_argument(
        "--report",
        type=str,
        default=None,
        metavar="PATH",
        help="Write the JSON outcome report here (default: [output].report_dir)",
    )
    run_p.add_argument(
        "--max-runtime",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Stop the run after this many seconds",
    )

    # -- search --------------------------------------------------------------
    sub.add_parser("search", help="List postings for the configured search")

    # -- login ---------------------------------------------------------------
    sub.add_parser("login", help="Log in interactively and save session cookies")

    # -- url -----------------------------------------------------------------
    sub.add_parser("url", help="Print the search URL(s) built from settings")

    return parser


_HANDLERS = {
    "run": handle_run,
    "search": handle_search,
    "login": handle_login,
    "url": handle_url,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose)
    if args.log_dir:
        configure_file_logging(args.log_dir)

    try:
        _HANDLERS[args.command](args)
    except ActionableError as exc:
        print(f"\nError: {exc.error}", file=sys.stderr)
        if exc.suggestion:
            print(f"Suggestion: {exc.suggestion}", file=sys.stderr)
        if exc.troubleshooting:
            for step in exc.troubleshooting.steps:
                print(f"  {step}", file=sys.stderr)
        sys.exit(1)
