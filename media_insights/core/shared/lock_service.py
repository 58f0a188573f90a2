"""
Storage-backed advisory lock for index builds.

Guards a site's index against concurrent builds by writing a lock record
next to the index. The lock is advisory: acquisition is a read followed by a
write, so two builders starting within the same instant can both succeed.
Locks older than the maximum age are treated as abandoned and replaced.

Key Features:
- Staleness: locks older than lock_max_age_ms (30 minutes) are taken over
- Context manager releases the lock on success, error and cancellation

Usage:
    from media_insights.core.shared.lock_service import IndexLockService, IndexLockedError

    lock_service = IndexLockService(index_store)

    try:
        async with lock_service.lock("org", "repo"):
            # Build the index
            pass
    except IndexLockedError as e:
        # Another build is running
        pass
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from media_insights.config import settings
from media_insights.core.shared.config_loader import config_loader
from media_insights.core.storage.index_store import IndexStore
from media_insights.models.index_models import IndexLock
from media_insights.utils.time_utils import now_ms

logger = logging.getLogger("media_insights.services.lock")


class IndexLockedError(RuntimeError):
    """Raised when another build holds a fresh lock on the site."""

    def __init__(self, message: str, lock_timestamp: Optional[int] = None):
        super().__init__(message)
        self.lock_timestamp = lock_timestamp


class IndexLockService:
    """
    Advisory lock over a site's index records.

    Lock Record Format (index-lock.json, single-row sheet):
        {"timestamp": <epoch ms>, "locked": true}
    """

    def __init__(self, index_store: IndexStore, max_age_ms: Optional[int] = None):
        self.index_store = index_store
        self.max_age_ms = (
            max_age_ms
            or config_loader.get("indexer.lock_max_age_ms")
            or settings.lock_max_age_ms
        )

    async def get_active_lock(self, org: str, repo: str) -> Optional[IndexLock]:
        """Return the current lock if it is held and not stale."""
        lock = await self.index_store.load_lock(org, repo)
        if lock is None or not lock.locked:
            return None
        if now_ms() - lock.timestamp >= self.max_age_ms:
            return None
        return lock

    async def acquire(self, org: str, repo: str) -> IndexLock:
        """
        Acquire the build lock for a site.

        Returns:
            The lock record written

        Raises:
            IndexLockedError: If a non-stale lock is held
        """
        existing = await self.index_store.load_lock(org, repo)
        if existing is not None and existing.locked:
            age = now_ms() - existing.timestamp
            if age < self.max_age_ms:
                minutes = round(age / 1000 / 60)
                raise IndexLockedError(
                    f"Index build already in progress. Lock created {minutes} minutes ago.",
                    lock_timestamp=existing.timestamp,
                )
            logger.warning(f"Removing stale index lock for {org}/{repo} ({round(age / 60000)} minutes old)")
            await self.index_store.delete_lock(org, repo)

        lock = IndexLock(timestamp=now_ms(), locked=True)
        await self.index_store.save_lock(org, repo, lock)
        logger.debug(f"Lock acquired: {org}/{repo}")
        return lock

    async def release(self, org: str, repo: str) -> bool:
        """Remove the lock record."""
        released = await self.index_store.delete_lock(org, repo)
        logger.debug(f"Lock released: {org}/{repo}")
        return released

    @asynccontextmanager
    async def lock(self, org: str, repo: str) -> AsyncIterator[IndexLock]:
        """
        Hold the build lock for the duration of the block.

        Raises:
            IndexLockedError: If a non-stale lock is held
        """
        acquired = await self.acquire(org, repo)
        try:
            yield acquired
        finally:
            try:
                await asyncio.shield(self.release(org, repo))
            except Exception as e:
                logger.error(f"Failed to release index lock for {org}/{repo}: {e}")
