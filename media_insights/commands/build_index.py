#!/usr/bin/env python3
"""
Media index build command.

Builds (or incrementally updates) the media index of one site and writes it
to object storage, or prints the current index status.

Usage:
    # Build the index of a site (full or incremental, decided automatically)
    python -m media_insights.commands.build_index --org acme --repo website

    # Build another branch
    python -m media_insights.commands.build_index --org acme --repo website --ref stage

    # Show index status without building
    python -m media_insights.commands.build_index --org acme --repo website --status

Environment Variables Required:
    - ADMIN_API_TOKEN: Bearer token for the log endpoints
    - SOURCE_API_TOKEN: Bearer token for page sources
    - MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY: Index storage

Exit codes:
    0 on success, 1 on failure, 2 when another build holds the lock
"""

import argparse
import asyncio
import logging
import sys

from media_insights.config import settings
from media_insights.core.indexing.indexer_service import MediaIndexer
from media_insights.core.shared.lock_service import IndexLockedError
from media_insights.utils.time_utils import to_iso

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("media_insights.commands.build_index")


def _print_progress(event: dict) -> None:
    percent = event.get("percent")
    prefix = f"[{percent:3d}%]" if percent is not None else "[   ]"
    logger.info(f"{prefix} {event.get('stage', '')}: {event.get('message', '')}")


async def show_status(indexer: MediaIndexer, org: str, repo: str) -> int:
    status = await indexer.get_index_status(org, repo)
    logger.info("=" * 60)
    logger.info(f"Media index status for {org}/{repo}")
    logger.info("=" * 60)
    logger.info(f"  Index exists:     {status.index_exists}")
    logger.info(f"  Last modified:    {to_iso(status.index_last_modified)}")
    logger.info(f"  Last refresh:     {to_iso(status.last_refresh)}")
    logger.info(f"  Last build mode:  {status.last_build_mode or 'n/a'}")
    logger.info(f"  Entries:          {status.entries_count}")
    return 0


async def build(indexer: MediaIndexer, org: str, repo: str, ref: str) -> int:
    try:
        result = await indexer.build_index(org, repo, ref, on_progress=_print_progress)
    except IndexLockedError as e:
        logger.warning(str(e))
        return 2

    logger.info("=" * 60)
    logger.info(f"Index build complete ({result.mode}) in {result.duration}")
    logger.info(f"  Entries: {len(result.entries)}")
    logger.info(f"  Changes: {'yes' if result.has_changes else 'no'}")
    logger.info("=" * 60)
    return 0


async def run(args: argparse.Namespace) -> int:
    indexer = MediaIndexer()
    try:
        if args.status:
            return await show_status(indexer, args.org, args.repo)
        return await build(indexer, args.org, args.repo, args.ref)
    finally:
        await indexer.aclose()


def main():
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(
        description="Build the media usage index of a site",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--org", required=True, help="Site organization")
    parser.add_argument("--repo", required=True, help="Site repository")
    parser.add_argument("--ref", default=settings.default_ref, help="Branch ref (default: %(default)s)")
    parser.add_argument("--status", action="store_true", help="Show index status and exit")

    args = parser.parse_args()

    try:
        exit_code = asyncio.run(run(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
