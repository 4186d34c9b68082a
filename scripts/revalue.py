"""
TCG Value — Operator CLI

Manual entry points for the revaluation engine. Useful for backfills,
support tickets, and checking a user's movers without the web app.

Usage:
    python scripts/revalue.py full [--date 2026-10-01]
    python scripts/revalue.py user --user-id 3f0c... [--date 2026-10-01]
    python scripts/revalue.py enqueue --user-id 3f0c...
    python scripts/revalue.py movers --user-id 3f0c... --days 30 --limit 50 --format csv
    python scripts/revalue.py snapshots --limit 1000 --start-after-id sv3-100 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from datetime import date
from typing import Any

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tcgvalue.config import settings
from tcgvalue.engine.movers import MoversUnavailableError, export_movers
from tcgvalue.main import _configure_logging, create_db_engine
from tcgvalue.pipeline.jobs import enqueue_revalue
from tcgvalue.pipeline.live_prices import LivePriceClient
from tcgvalue.pipeline.revalue import RevaluationPipeline, RevalueError
from tcgvalue.pipeline.snapshots import TcgdexSnapshotWriter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run TCG Value revaluation, movers and snapshot jobs by hand.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/revalue.py full
  python scripts/revalue.py user --user-id 3f0c2a4e-1111-2222-3333-444455556666
  python scripts/revalue.py movers --user-id 3f0c2a4e-... --days 7 --format csv > movers.csv
""",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.LOG_LEVEL,
        help="Logging level (default: from LOG_LEVEL).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    full = sub.add_parser("full", help="Revalue every user's collection.")
    full.add_argument("--date", type=date.fromisoformat, default=None, help="as_of_date (YYYY-MM-DD), default today UTC.")
    full.add_argument("--no-live", action="store_true", help="Disable live price fallback.")

    user = sub.add_parser("user", help="Revalue one user's collection now.")
    user.add_argument("--user-id", type=str, required=True)
    user.add_argument("--date", type=date.fromisoformat, default=None)
    user.add_argument("--no-live", action="store_true", help="Disable live price fallback.")

    enqueue = sub.add_parser("enqueue", help="Queue a revaluation job for the worker.")
    enqueue.add_argument("--user-id", type=str, required=True)

    movers = sub.add_parser("movers", help="Print a user's top movers.")
    movers.add_argument("--user-id", type=str, required=True)
    movers.add_argument("--days", type=int, default=settings.MOVERS_DEFAULT_DAYS)
    movers.add_argument("--limit", type=int, default=settings.MOVERS_DEFAULT_LIMIT)
    movers.add_argument("--format", type=str, choices=("json", "csv"), default="json")

    snapshots = sub.add_parser("snapshots", help="Write daily TCGdex price snapshots.")
    snapshots.add_argument("--limit", type=int, default=settings.SNAPSHOT_BATCH_LIMIT)
    snapshots.add_argument("--start-after-id", type=str, default=None)
    snapshots.add_argument("--date", type=date.fromisoformat, default=None)
    snapshots.add_argument("--dry-run", action="store_true", help="Compute but do not write.")

    return parser.parse_args(argv)


async def run_command(args: argparse.Namespace) -> Any:
    engine, session_factory = await create_db_engine()
    try:
        if args.command in ("full", "user"):
            async with LivePriceClient() as live_client:
                pipeline = RevaluationPipeline(
                    session_factory,
                    live_lookup=None if args.no_live else live_client,
                )
                if args.command == "full":
                    result = await pipeline.run_full(as_of_date=args.date)
                else:
                    result = await pipeline.run_for_user(args.user_id, as_of_date=args.date)
            return result.as_dict()

        if args.command == "enqueue":
            async with session_factory() as session:
                queued = await enqueue_revalue(session, args.user_id)
                await session.commit()
            return {"user_id": args.user_id, "queued": queued}

        if args.command == "movers":
            async with session_factory() as session:
                return await export_movers(
                    session,
                    args.user_id,
                    window_days=args.days,
                    limit=args.limit,
                    fmt=args.format,
                )

        if args.command == "snapshots":
            writer = TcgdexSnapshotWriter(session_factory)
            stats = await writer.run(
                limit=args.limit,
                start_after_id=args.start_after_id,
                dry_run=args.dry_run,
                as_of_date=args.date,
            )
            return stats.as_dict()

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    _configure_logging(log_level=args.log_level, stream=sys.stderr)

    try:
        output = await run_command(args)
    except RevalueError as e:
        print(f"Revaluation failed: {e}", file=sys.stderr)
        print(json.dumps(e.result.as_dict(), indent=2), file=sys.stderr)
        sys.exit(1)
    except MoversUnavailableError as e:
        print(f"Movers unavailable: {e.reason}", file=sys.stderr)
        print(json.dumps(e.columns.as_dict(), indent=2), file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Command failed: {e}", file=sys.stderr)
        sys.exit(1)

    if isinstance(output, str):
        sys.stdout.write(output)
    else:
        print(json.dumps(output, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
