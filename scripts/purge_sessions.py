#!/usr/bin/env python3
"""
Purge ended sessions and password reset tokens.

Deletes ledger rows whose expiry or revocation is older than the retention
window, plus expired or used password reset rows. Designed to run from cron.

Usage:
    # Purge everything that ended more than 30 days ago (default)
    python3 scripts/purge_sessions.py

    # Custom retention
    python3 scripts/purge_sessions.py --retention-days 90

    # Dry run (deletes inside a transaction, then rolls back)
    python3 scripts/purge_sessions.py --dry-run

    # Verbose logging
    python3 scripts/purge_sessions.py --verbose
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.db.session import close_engines, get_write_session
from app.services.password_reset import purge_password_resets
from app.services.session_ledger import SessionLedger

DEFAULT_RETENTION_DAYS = 30

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurgeResult:
    """Rows deleted (or that would be deleted, on a dry run)."""

    sessions: int
    password_resets: int


async def purge(retention_days: int, dry_run: bool = False) -> PurgeResult:
    """Delete ended sessions and reset tokens older than the retention window."""
    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    logger.info(f"Purging rows that ended before {cutoff.isoformat()}")

    async with get_write_session() as session:
        sessions = await SessionLedger(session).purge(cutoff)
        resets = await purge_password_resets(session, cutoff)

        if dry_run:
            await session.rollback()
            logger.info("DRY RUN - rolled back")
        else:
            await session.commit()

    return PurgeResult(sessions=sessions, password_resets=resets)


async def _run(args: argparse.Namespace) -> PurgeResult:
    try:
        return await purge(args.retention_days, dry_run=args.dry_run)
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Purge ended sessions and password reset tokens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=DEFAULT_RETENTION_DAYS,
        help=f"Keep rows that ended within this many days (default: {DEFAULT_RETENTION_DAYS})",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Don't delete, just show what would happen"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.retention_days < 0:
        logger.error("--retention-days must be >= 0")
        sys.exit(1)

    result = asyncio.run(_run(args))
    verb = "Would delete" if args.dry_run else "Deleted"
    logger.info(f"{verb} {result.sessions} sessions, {result.password_resets} password resets")
    sys.exit(0)


if __name__ == "__main__":
    main()
