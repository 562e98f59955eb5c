#!/usr/bin/env python3
"""Search maintenance tasks, meant to be run from cron or a scheduler.

Commands:
    preload     Warm the result cache with page 1 of the most popular queries
    purge       Delete analytics records older than the retention window
    invalidate  Drop every cached search result page (after catalog changes)

Usage:
    python scripts/search_maintenance.py preload
    python scripts/search_maintenance.py purge [--days N] [--dry-run]
    python scripts/search_maintenance.py invalidate
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mounasabet_search.config import Settings  # noqa: E402
from mounasabet_search.container import SearchContainer  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


async def preload(config: Settings) -> int:
    container = SearchContainer(config)
    await container.initialize()
    try:
        if container.result_cache is None:
            logger.warning("Result cache unavailable; nothing to preload")
            return 0
        return await container.optimizer.preload_popular_results()
    finally:
        await container.close()


async def purge(config: Settings, days: int, dry_run: bool = False) -> int:
    container = SearchContainer(config)
    await container.initialize()
    try:
        cutoff = time.time() - days * SECONDS_PER_DAY
        if dry_run:
            stale = await container.analytics_db.count_older_than(cutoff)
            logger.info(f"DRY RUN: {stale} analytics records older than {days} days would be purged")
            return stale
        return await container.analytics_db.purge_older_than(cutoff)
    finally:
        await container.close()


async def invalidate(config: Settings) -> int:
    container = SearchContainer(config)
    await container.initialize()
    try:
        return await container.search_service.invalidate_cache()
    finally:
        await container.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Search cache and analytics maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("preload", help="Warm the result cache with popular queries")

    purge_parser = subparsers.add_parser("purge", help="Delete old analytics records")
    purge_parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention window in days (default: MOUNASABET_ANALYTICS_RETENTION_DAYS)",
    )
    purge_parser.add_argument("--dry-run", action="store_true", help="Count records without deleting")
    subparsers.add_parser("invalidate", help="Drop cached search results")

    args = parser.parse_args()
    config = Settings()

    if args.command == "preload":
        warmed = asyncio.run(preload(config))
        logger.info(f"Preload complete: {warmed} queries warmed")
    elif args.command == "purge":
        days = args.days or config.analytics.retention_days
        if days < 1:
            parser.error("--days must be at least 1")
        deleted = asyncio.run(purge(config, days, dry_run=args.dry_run))
        if not args.dry_run:
            logger.info(f"Purge complete: {deleted} analytics records deleted")
    elif args.command == "invalidate":
        dropped = asyncio.run(invalidate(config))
        logger.info(f"Invalidation complete: {dropped} cached result pages dropped")


if __name__ == "__main__":
    main()
