#!/usr/bin/env python3
"""
TaskHub — Activity Log Retention
Deletes activity entries older than the retention window.

Usage:
    python scripts/purge_activity_logs.py
    python scripts/purge_activity_logs.py --days 30
"""

import argparse
import asyncio
import logging

from activity import purge_expired_activity_logs, ACTIVITY_LOG_RETENTION_DAYS
from database import get_db_context, close_db


async def purge(days: int) -> int:
    try:
        async with get_db_context() as db:
            return await purge_expired_activity_logs(db, retention_days=days)
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="TaskHub Activity Log Retention")
    parser.add_argument(
        "--days", type=int, default=ACTIVITY_LOG_RETENTION_DAYS,
        help=f"Retention window in days (default {ACTIVITY_LOG_RETENTION_DAYS})",
    )
    args = parser.parse_args()
    if args.days < 1:
        parser.error("--days must be at least 1")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    removed = asyncio.run(purge(args.days))
    print(f"✅ Removed {removed} activity entries older than {args.days} days")


if __name__ == "__main__":
    main()
