#!/usr/bin/env python3
"""Console watcher for the mail room status board.

Connects to the store, prints every neighborhood's effective status, and
reprints whenever a change arrives or a report decays.  Optionally reports
a status first.

Usage
-----
Set environment variables and run::

    export MAILROOM_BASE_URL="https://xyz.example.co"
    export MAILROOM_API_KEY="..."
    python scripts/watch_board.py

Options::

    --report NAME STATUS   Report STATUS (open/closed) for NAME, then watch
    --once                 Print the board once and exit
    --local                Use an in-memory store instead of the network
    --no-feed              Do not subscribe to the change feed
    --verbose, -v          Enable debug logs
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pymailroom import (  # noqa: E402
    DEFAULT_REGISTRY,
    InMemoryStoreAdapter,
    MailroomClient,
    MailroomConfig,
    MailroomError,
    MailroomStatus,
    StatusBoard,
)

_LOG = logging.getLogger("watch_board")

_MARKS = {
    MailroomStatus.OPEN: "[open]   ",
    MailroomStatus.CLOSED: "[closed] ",
    MailroomStatus.UNKNOWN: "[?]      ",
}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the mail room status board.")
    parser.add_argument("--report", nargs=2, metavar=("NAME", "STATUS"), help="Report a status before watching.")
    parser.add_argument("--once", action="store_true", help="Print the board once and exit.")
    parser.add_argument("--local", action="store_true", help="Use an in-memory store.")
    parser.add_argument("--no-feed", action="store_true", help="Do not subscribe to the change feed.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _age(last_updated: datetime | None, now: datetime) -> str:
    if last_updated is None:
        return "never reported"
    minutes = int((now - last_updated).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    return f"{minutes} min ago"


def _render(board: StatusBoard) -> None:
    now = datetime.now(UTC)
    print(f"\n== Mail rooms at {now:%H:%M:%S} UTC ==")
    for neighborhood, views in board.grouped(now).items():
        print(f"\n  {neighborhood}")
        for view in views:
            print(f"    {_MARKS[view.status]}{view.name:<24} {_age(view.last_updated, now)}")
    for view in board.ungrouped(now):
        print(f"    {_MARKS[view.status]}{view.name:<24} (not in registry)")


def _on_error(error: MailroomError) -> None:
    print(f"!! {error}", file=sys.stderr)


async def _watch(board: StatusBoard, args: argparse.Namespace) -> None:
    if args.report:
        name, status = args.report
        try:
            await board.report_status(name, MailroomStatus(status))
        except MailroomError as exc:
            _LOG.error("Report failed: %s", exc)
    _render(board)
    if args.once:
        return
    board.add_listener(lambda _names: _render(board))
    await asyncio.Event().wait()


async def _main() -> int:
    args = _parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.local:
        adapter = InMemoryStoreAdapter(registry=DEFAULT_REGISTRY)
        async with StatusBoard(adapter, on_error=_on_error) as board:
            await _watch(board, args)
        return 0

    overrides = {"feed_enabled": False} if args.no_feed else {}
    config = MailroomConfig.from_env(**overrides)
    async with MailroomClient(config) as client:
        async with client.board(on_error=_on_error) as board:
            await _watch(board, args)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(_main()))
    except KeyboardInterrupt:
        sys.exit(130)
    except MailroomError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
