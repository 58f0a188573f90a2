"""
Media indexer service.

Long-lived entry point for a media view: triggers builds, reloads the index
when another writer changes it, and waits out builds started elsewhere.

Key Features:
- Builds pause change polling while they run
- Lock contention is not an error: the site is marked locked-by-other and a
  lock-check poll reloads the index once the other build finishes
- Background tasks and HTTP clients are owned by the instance and released
  by aclose()

Usage:
    from media_insights.core.indexing.indexer_service import get_media_indexer

    indexer = get_media_indexer()
    result = await indexer.trigger_build("org", "repo")
    indexer.start_polling("org", "repo")
    ...
    await indexer.aclose()
"""

import asyncio
import inspect
import logging
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Set, Tuple

from media_insights.config import settings
from media_insights.connectors.admin_log.log_client import LogClient
from media_insights.connectors.content.source_client import SourceClient
from media_insights.core.indexing.build_service import BuildResult, IndexBuildService
from media_insights.core.indexing.entries import MediaEntry
from media_insights.core.indexing.progress import ProgressCallback, SnapshotCallback
from media_insights.core.indexing.query import sort_media_data
from media_insights.core.shared.config_loader import config_loader
from media_insights.core.shared.lock_service import IndexLockedError, IndexLockService
from media_insights.core.storage.index_store import IndexStore
from media_insights.core.storage.minio_service import MinIOService
from media_insights.core.storage.object_store import ObjectStore
from media_insights.models.index_models import IndexStatus

logger = logging.getLogger("media_insights.services.indexer")

SiteKey = Tuple[str, str]
MediaUpdatedCallback = Callable[[str, str, List[MediaEntry]], object]


class MediaIndexer:
    """Build trigger, change polling and lock-wait polling for media indexes."""

    def __init__(
        self,
        log_client: Optional[LogClient] = None,
        source_client: Optional[SourceClient] = None,
        object_store: Optional[ObjectStore] = None,
        build_service: Optional[IndexBuildService] = None,
        polling_interval: Optional[float] = None,
        lock_check_interval: Optional[float] = None,
        on_media_updated: Optional[MediaUpdatedCallback] = None,
    ):
        self.log_client = log_client or LogClient()
        self.source_client = source_client or SourceClient()
        self.object_store = object_store or MinIOService()
        self.index_store = IndexStore(self.object_store)
        self.lock_service = IndexLockService(self.index_store)
        self.build_service = build_service or IndexBuildService(
            self.log_client,
            self.source_client,
            self.index_store,
            lock_service=self.lock_service,
        )
        self.polling_interval = (
            polling_interval
            or config_loader.get("indexer.polling_interval")
            or settings.polling_interval
        )
        self.lock_check_interval = (
            lock_check_interval
            or config_loader.get("indexer.lock_check_interval")
            or settings.lock_check_interval
        )
        self.on_media_updated = on_media_updated

        self._last_modified: Dict[SiteKey, Optional[int]] = {}
        self._locked_by_other: Set[SiteKey] = set()
        self._lock_checks: Dict[SiteKey, asyncio.Task] = {}
        self._polling_task: Optional[asyncio.Task] = None
        self._polling_paused = False
        self._indexing = False

    # =========================================================================
    # BUILD & READ
    # =========================================================================

    async def build_index(
        self,
        org: str,
        repo: str,
        ref: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_progressive_data: Optional[SnapshotCallback] = None,
    ) -> BuildResult:
        """Run a build and remember the resulting index version. Errors propagate."""
        result = await self.build_service.build_index(
            org, repo, ref, on_progress=on_progress, on_progressive_data=on_progressive_data,
        )
        check = await self.index_store.check_index(org, repo)
        self._last_modified[(org, repo)] = check.last_modified
        self._locked_by_other.discard((org, repo))
        return result

    async def get_index_status(self, org: str, repo: str) -> IndexStatus:
        return await self.build_service.get_index_status(org, repo)

    async def load_media(self, org: str, repo: str) -> List[MediaEntry]:
        """Persisted entries of a site in display order."""
        entries, _ = await self.index_store.load_index(org, repo)
        return sort_media_data(entries)

    async def load_if_updated(self, org: str, repo: str) -> Tuple[bool, Optional[List[MediaEntry]]]:
        """
        Reload the index if it changed since this instance last saw it.

        Returns:
            (has_changed, entries); entries is None when unchanged
        """
        check = await self.index_store.check_index(org, repo)
        if not check.exists:
            return False, None

        key = (org, repo)
        if key in self._last_modified and self._last_modified[key] == check.last_modified:
            return False, None

        self._last_modified[key] = check.last_modified
        return True, await self.load_media(org, repo)

    def is_locked_by_other(self, org: str, repo: str) -> bool:
        return (org, repo) in self._locked_by_other

    async def trigger_build(
        self,
        org: str,
        repo: str,
        ref: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_progressive_data: Optional[SnapshotCallback] = None,
    ) -> Optional[BuildResult]:
        """
        Run a build with change polling paused.

        Returns:
            BuildResult, or None when another build holds the lock

        Raises:
            Exception: Any build failure other than lock contention
        """
        self._indexing = True
        self.pause_polling()
        try:
            return await self.build_index(org, repo, ref, on_progress, on_progressive_data)
        except IndexLockedError as e:
            logger.info(f"Index for {org}/{repo} is being built elsewhere: {e}")
            self._locked_by_other.add((org, repo))
            self._start_lock_check(org, repo)
            return None
        except Exception as e:
            logger.error(f"Index build failed for {org}/{repo}: {e}")
            raise
        finally:
            self._indexing = False
            self.resume_polling()

    # =========================================================================
    # POLLING
    # =========================================================================

    def start_polling(self, org: str, repo: str) -> None:
        """Poll for index changes every polling_interval seconds."""
        if self._polling_task is not None and not self._polling_task.done():
            self._polling_task.cancel()
        self._polling_paused = False
        self._polling_task = asyncio.ensure_future(self._poll_changes(org, repo))
        logger.debug(f"Started change polling for {org}/{repo} every {self.polling_interval}s")

    def pause_polling(self) -> None:
        self._polling_paused = True

    def resume_polling(self) -> None:
        self._polling_paused = False

    async def _poll_changes(self, org: str, repo: str) -> None:
        while True:
            await asyncio.sleep(self.polling_interval)
            if self._polling_paused or self._indexing:
                continue
            try:
                changed, entries = await self.load_if_updated(org, repo)
            except Exception as e:
                logger.warning(f"Change poll failed for {org}/{repo}: {e}")
                continue
            if changed:
                logger.info(f"Index for {org}/{repo} changed; {len(entries or [])} entries reloaded")
                await self._notify(org, repo, entries or [])

    def _start_lock_check(self, org: str, repo: str) -> None:
        key = (org, repo)
        task = self._lock_checks.get(key)
        if task is not None and not task.done():
            return
        self._lock_checks[key] = asyncio.ensure_future(self._poll_lock(org, repo))

    async def _poll_lock(self, org: str, repo: str) -> None:
        """Wait for another writer's lock to clear, then reload its index."""
        key = (org, repo)
        try:
            while True:
                await asyncio.sleep(self.lock_check_interval)
                try:
                    lock = await self.lock_service.get_active_lock(org, repo)
                    if lock is not None:
                        continue
                    changed, entries = await self.load_if_updated(org, repo)
                except Exception as e:
                    logger.warning(f"Lock check failed for {org}/{repo}: {e}")
                    continue
                self._locked_by_other.discard(key)
                if changed:
                    await self._notify(org, repo, entries or [])
                logger.info(f"Index lock for {org}/{repo} released by other writer")
                return
        finally:
            self._lock_checks.pop(key, None)

    async def _notify(self, org: str, repo: str, entries: List[MediaEntry]) -> None:
        if self.on_media_updated is None:
            return
        try:
            result = self.on_media_updated(org, repo, entries)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Media update callback failed for {org}/{repo}: {e}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def aclose(self) -> None:
        """Cancel background tasks and close clients."""
        tasks = list(self._lock_checks.values())
        if self._polling_task is not None:
            tasks.append(self._polling_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._polling_task = None
        self._lock_checks.clear()

        await self.log_client.aclose()
        await self.source_client.aclose()
        await self.object_store.aclose()


# =============================================================================
# SINGLETON SERVICE
# =============================================================================


@lru_cache()
def get_media_indexer() -> MediaIndexer:
    """
    Get the default MediaIndexer configured from config.yml and environment.

    Returns:
        MediaIndexer singleton
    """
    return MediaIndexer()
