"""Entry point for Claude Sessions CLI."""

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from datetime import datetime
from pathlib import Path

from . import __version__
from ._utils import (
    format_currency,
    format_duration,
    format_percentage,
    format_relative_time,
    format_tokens,
)
from .core.errors import DirectoryUnavailable
from .core.models import FreshnessThresholds, Session, SessionStatus, summarize
from .log import logger, setup_logging

# ---------------------------------------------------------------------------
# One-shot listing
# ---------------------------------------------------------------------------


def session_record(
    session: Session, now: datetime, thresholds: FreshnessThresholds
) -> dict:
    """JSON-ready view of *session* for ``--list --json``."""
    record = {
        "session_id": session.session_id,
        "cwd": session.cwd,
        "name": session.name,
        "first_prompt": session.first_prompt,
        "project_name": session.project_name,
        "status": session.status(now, thresholds).value,
        "model": {"display_name": session.model.display_name, "id": session.model.id},
        "context_window": {
            "used_percentage": session.context_window.used_percentage,
            "max_tokens": session.context_window.max_tokens,
        },
        "token_usage": {
            "input": session.token_usage.input,
            "output": session.token_usage.output,
            "total": session.token_usage.total,
        },
        "cost": {
            "total": session.cost.total,
            "input": session.cost.input,
            "output": session.cost.output,
        },
        "duration_seconds": session.duration,
        "code_impact": None,
        "last_update_time": session.last_update_time.isoformat(),
    }
    if session.code_impact is not None:
        record["code_impact"] = {
            "lines_added": session.code_impact.lines_added,
            "lines_removed": session.code_impact.lines_removed,
        }
    return record


def _print_table(sessions: list[Session], now: datetime, thresholds: FreshnessThresholds) -> None:
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    console = Console()
    if not sessions:
        console.print("[dim]No Claude sessions found.[/dim]")
        return

    table = Table(box=None, header_style="bold")
    for label, justify in (
        ("", "left"),
        ("Session", "left"),
        ("Model", "left"),
        ("Context", "right"),
        ("Tokens", "right"),
        ("Cost", "right"),
        ("Time", "right"),
        ("Updated", "left"),
    ):
        table.add_column(label, justify=justify)

    for session in sessions:
        status = session.status(now, thresholds)
        table.add_row(
            f"[{status.color}]{status.icon}[/]",
            escape(session.title),
            escape(session.model.display_name),
            format_percentage(session.context_window.used_percentage),
            format_tokens(session.token_usage.total),
            format_currency(session.cost.total),
            format_duration(session.duration),
            format_relative_time(session.last_update_time, now),
        )
    console.print(table)

    summary = summarize(sessions, now, thresholds)
    console.print(
        f"\nTotal cost [b]{format_currency(summary.total_cost)}[/b]  "
        f"Active: {summary.active}  Idle: {summary.idle}  Closed: {summary.closed}"
    )


def list_sessions(session_dir: Path | None, as_json: bool) -> int:
    """Scan once, print the result, return the exit status."""
    from .core.features.session_scanner import SessionScanner
    from .preferences import load_preferences

    prefs = load_preferences()
    thresholds = prefs.thresholds
    scanner = SessionScanner(session_dir or prefs.session_dir)
    now = datetime.now().astimezone()
    try:
        sessions = scanner.scan(now, thresholds)
    except DirectoryUnavailable as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not prefs.display.show_closed_sessions and not as_json:
        sessions = [s for s in sessions if s.status(now, thresholds) is not SessionStatus.CLOSED]

    if as_json:
        print(json.dumps([session_record(s, now, thresholds) for s in sessions], indent=2))
    else:
        _print_table(sessions, now, thresholds)
    return 0


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if not math.isfinite(number) or number <= 0:
        raise argparse.ArgumentTypeError("must be a finite number greater than zero")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-sessions",
        description="Monitor Claude Code sessions",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"claude-sessions {__version__}",
    )
    parser.add_argument(
        "--dir",
        "-d",
        type=Path,
        default=None,
        help="Status-file directory (default: ~/.claude_sessions)",
    )
    parser.add_argument(
        "--interval",
        "-i",
        type=_positive_float,
        default=None,
        help="Seconds between periodic rescans (overrides preferences)",
    )
    parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="Print the current sessions once and exit",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="With --list, print JSON instead of a table",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write logs to this file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at debug level",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Run Claude Sessions."""
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(args.log_file, level)

    session_dir = args.dir.expanduser() if args.dir else None

    if args.list or args.json:
        sys.exit(list_sessions(session_dir, args.json))

    from .app import run_app

    logger.info("Starting claude-sessions %s", __version__)
    try:
        run_app(session_dir=session_dir, refresh_interval=args.interval)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
