"""
Index build orchestration.

Runs one build for a site under the advisory lock: decides between a full
rebuild and an incremental update, streams the audit and media logs in
parallel, folds them through the reconciliation steps, resolves linked
content from page markdown and persists the result with fresh metadata.

Build Modes:
- full: streams the whole log history into an empty index
- incremental: streams only entries newer than the stored watermark into
  the persisted index; returns the index untouched when nothing qualifies

Usage:
    from media_insights.core.indexing.build_service import IndexBuildService

    service = IndexBuildService(log_client, source_client, index_store)
    result = await service.build_index("org", "repo", on_progress=print)
    print(result.mode, result.duration, len(result.entries))
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from media_insights.config import settings
from media_insights.core.constants import (
    AUDIT_LOG,
    BUILD_MODE_FULL,
    BUILD_MODE_INCREMENTAL,
    MEDIA_LOG,
    STATUS_DISCOVERING,
)
from media_insights.core.indexing.entries import MediaEntry, linked_content_entry
from media_insights.core.indexing.entry_index import EntryIndex
from media_insights.core.indexing.folds import AuditLogFold, MediaLogFold
from media_insights.core.indexing.progress import (
    STAGE_COMPLETE,
    STAGE_FETCHING,
    STAGE_LOADING,
    STAGE_PROCESSING,
    STAGE_SAVING,
    STAGE_STARTING,
    ProgressCallback,
    ProgressChannel,
    SnapshotCallback,
)
from media_insights.core.indexing.query import sort_media_data
from media_insights.core.indexing.reconcile import (
    ReconcileStats,
    SiteRef,
    log_stats,
    pages_to_parse,
    reconcile_linked,
    reconcile_media,
)
from media_insights.core.shared.config_loader import config_loader
from media_insights.core.shared.lock_service import IndexLockService
from media_insights.core.storage.index_store import IndexStore
from media_insights.connectors.content.linked_content import build_usage_map
from media_insights.models.index_models import IndexMeta, IndexStatus, ReindexEligibility
from media_insights.utils.time_utils import format_elapsed, now_ms

logger = logging.getLogger("media_insights.indexing.build")


class IndexConfigurationError(ValueError):
    """Raised when an incremental build is requested without a watermark."""


@dataclass
class BuildResult:
    """Outcome of one build."""
    entries: List[MediaEntry]
    has_changes: bool
    duration: str
    mode: str


@dataclass
class _Perf:
    started: float = field(default_factory=time.monotonic)
    data: Dict[str, Any] = field(default_factory=dict)

    def elapsed_ms(self, since: Optional[float] = None) -> int:
        return int((time.monotonic() - (since if since is not None else self.started)) * 1000)


class IndexBuildService:
    """
    Builds and persists the media index of a site.

    Collaborators are injected; configuration falls back to config.yml and
    then to environment settings.
    """

    def __init__(
        self,
        log_client,
        source_client,
        index_store: IndexStore,
        lock_service: Optional[IndexLockService] = None,
        alignment_tolerance_ms: Optional[int] = None,
        max_concurrent_fetches: Optional[int] = None,
        display_cap: Optional[int] = None,
        perf_logging: Optional[bool] = None,
    ):
        self.log_client = log_client
        self.source_client = source_client
        self.index_store = index_store
        self.lock_service = lock_service or IndexLockService(index_store)
        self.alignment_tolerance_ms = (
            alignment_tolerance_ms
            if alignment_tolerance_ms is not None
            else config_loader.get("indexer.alignment_tolerance_ms") or settings.alignment_tolerance_ms
        )
        self.max_concurrent_fetches = (
            max_concurrent_fetches
            or config_loader.get("source_api.max_concurrent_fetches")
            or settings.max_concurrent_fetches
        )
        self.display_cap = (
            display_cap
            or config_loader.get("indexer.progressive_display_cap")
            or settings.progressive_display_cap
        )
        if perf_logging is None:
            perf_logging = bool(config_loader.get("indexer.perf_logging") or settings.perf_logging)
        self.perf_logging = perf_logging

    # =========================================================================
    # STATUS & ELIGIBILITY
    # =========================================================================

    async def get_index_status(self, org: str, repo: str) -> IndexStatus:
        meta = await self.index_store.load_meta(org, repo)
        check = await self.index_store.check_index(org, repo)
        return IndexStatus(
            last_refresh=meta.last_fetch_time if meta else None,
            entries_count=meta.entries_count if meta else 0,
            last_build_mode=meta.last_build_mode if meta else None,
            index_exists=check.exists,
            index_last_modified=check.last_modified,
        )

    async def check_reindex_eligibility(
        self,
        org: str,
        repo: str,
        meta: Optional[IndexMeta] = None,
    ) -> ReindexEligibility:
        """
        Decide whether the site needs a full rebuild.

        An incremental update is only safe when the persisted index was
        written by the build that recorded the watermark, i.e. its
        modification time lies within the alignment tolerance of
        lastFetchTime.
        """
        if meta is None:
            meta = await self.index_store.load_meta(org, repo)
        if meta is None or not meta.last_fetch_time:
            return ReindexEligibility(should_reindex=True, reason="No previous build watermark")

        check = await self.index_store.check_index(org, repo)
        if not check.exists:
            return ReindexEligibility(should_reindex=True, reason="Index does not exist")
        if check.last_modified is None:
            return ReindexEligibility(should_reindex=True, reason="Index modification time unknown")

        drift = abs(meta.last_fetch_time - check.last_modified)
        if drift > self.alignment_tolerance_ms:
            return ReindexEligibility(
                should_reindex=True,
                reason=(
                    f"Index modified {drift}ms away from last fetch time "
                    f"(tolerance {self.alignment_tolerance_ms}ms)"
                ),
            )
        return ReindexEligibility(should_reindex=False, reason="Index aligned with last fetch time")

    # =========================================================================
    # BUILD
    # =========================================================================

    async def build_index(
        self,
        org: str,
        repo: str,
        ref: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_progressive_data: Optional[SnapshotCallback] = None,
        mode: Optional[str] = None,
    ) -> BuildResult:
        """
        Build the index of a site.

        Args:
            org: Site organization
            repo: Site repository
            ref: Branch ref (defaults to the configured ref)
            on_progress: Optional callback receiving {stage, message, percent}
            on_progressive_data: Optional callback receiving partial entries
            mode: Force `full` or `incremental`; decided by the gate when None

        Returns:
            BuildResult with display-sorted entries

        Raises:
            IndexLockedError: If another build holds the lock
            IndexConfigurationError: If incremental is forced without a watermark
            LogFetchError: If a log cannot be fetched
            IndexStoreError: If the index cannot be written
        """
        ref = ref or config_loader.get("indexer.default_ref") or settings.default_ref
        site = SiteRef(org=org, repo=repo, ref=ref)
        progress = ProgressChannel(on_progress, on_progressive_data, self.display_cap)
        perf = _Perf()

        async with self.lock_service.lock(org, repo):
            await progress.emit(STAGE_STARTING, "Starting index build", 5)

            meta = await self.index_store.load_meta(org, repo)
            if mode is None:
                eligibility = await self.check_reindex_eligibility(org, repo, meta)
                mode = BUILD_MODE_FULL if eligibility.should_reindex else BUILD_MODE_INCREMENTAL
                logger.info(f"Index build for {org}/{repo}: {mode} ({eligibility.reason})")
            else:
                logger.info(f"Index build for {org}/{repo}: {mode} (requested)")

            if mode == BUILD_MODE_INCREMENTAL:
                result = await self._build_incremental(site, meta, progress, perf)
            else:
                result = await self._build_full(site, progress, perf)

        perf.data["totalDurationMs"] = perf.elapsed_ms()
        if self.perf_logging:
            logger.info(f"Index build perf for {org}/{repo}: {perf.data}")
        logger.info(
            f"Index build for {org}/{repo} finished in {result.duration}: "
            f"{len(result.entries)} entries, changes={result.has_changes}"
        )
        return result

    async def _build_full(self, site: SiteRef, progress: ProgressChannel, perf: _Perf) -> BuildResult:
        audit_fold = AuditLogFold()
        media_fold = MediaLogFold()

        async def on_audit(entries: List[Dict[str, Any]]) -> None:
            audit_fold.add_chunk(entries)
            if progress.wants_snapshots:
                await progress.emit_snapshot(self._discovering_rows(audit_fold, site))

        await progress.emit(STAGE_FETCHING, "Fetching audit and media logs", 10)
        await self._stream_logs(site, None, on_audit, media_fold.add_chunk, perf)
        await progress.emit(
            STAGE_FETCHING,
            f"Fetched {audit_fold.entry_count} audit and {media_fold.entry_count} media log entries",
            15,
        )

        index = EntryIndex()
        stats = ReconcileStats()
        await self._reconcile(index, audit_fold, media_fold, site, progress, perf, stats, previewed_empty=False)
        return await self._persist(site, index, BUILD_MODE_FULL, stats, progress, perf)

    async def _build_incremental(
        self,
        site: SiteRef,
        meta: Optional[IndexMeta],
        progress: ProgressChannel,
        perf: _Perf,
    ) -> BuildResult:
        """
        Apply the log entries since the watermark to the persisted index.

        Old per-page hash sets are read from the media rows. The persisted
        usage table is only checked against them and rewritten on save.
        """
        if meta is None or not meta.last_fetch_time:
            raise IndexConfigurationError(
                f"Cannot run an incremental build for {site.org}/{site.repo} without lastFetchTime"
            )

        await progress.emit(STAGE_LOADING, "Loading existing index", 8)
        existing, usage = await self.index_store.load_index(site.org, site.repo)
        index = EntryIndex(existing)
        if usage != index.usage_index():
            logger.warning(
                f"Usage table of {site.org}/{site.repo} does not match its media rows; rebuilding it on save"
            )
        await progress.emit_snapshot(existing)

        audit_fold = AuditLogFold()
        media_fold = MediaLogFold()
        await progress.emit(STAGE_FETCHING, "Fetching log entries since last build", 10)
        await self._stream_logs(site, meta.last_fetch_time, audit_fold.add_chunk, media_fold.add_chunk, perf)
        await progress.emit(
            STAGE_FETCHING,
            f"Fetched {audit_fold.entry_count} audit and {media_fold.entry_count} media log entries",
            15,
        )

        if not audit_fold.has_previews and not media_fold.has_entries:
            logger.info(f"No new log entries for {site.org}/{site.repo} since last build")
            await progress.emit(STAGE_COMPLETE, "Index is up to date", 100)
            return BuildResult(
                entries=sort_media_data(existing),
                has_changes=False,
                duration=format_elapsed(time.monotonic() - perf.started),
                mode=BUILD_MODE_INCREMENTAL,
            )

        stats = ReconcileStats()
        await self._reconcile(index, audit_fold, media_fold, site, progress, perf, stats, previewed_empty=True)
        return await self._persist(site, index, BUILD_MODE_INCREMENTAL, stats, progress, perf)

    async def _reconcile(
        self,
        index: EntryIndex,
        audit_fold: AuditLogFold,
        media_fold: MediaLogFold,
        site: SiteRef,
        progress: ProgressChannel,
        perf: _Perf,
        stats: ReconcileStats,
        previewed_empty: bool,
    ) -> None:
        await progress.emit(STAGE_PROCESSING, "Processing media log", 35)
        lost_linked = reconcile_media(index, audit_fold, media_fold, previewed_empty, stats)
        await progress.emit_snapshot(index.entries())

        pages = pages_to_parse(audit_fold, media_fold)
        await progress.emit(STAGE_PROCESSING, f"Parsing {len(pages)} pages for linked content", 55)

        async def on_parse(event: Dict[str, Any]) -> None:
            await progress.emit(STAGE_PROCESSING, event.get("message", ""), 60)

        parse_started = time.monotonic()
        usage_map = await build_usage_map(
            pages,
            site.org,
            site.repo,
            self.source_client,
            on_progress=on_parse,
            max_concurrent_fetches=self.max_concurrent_fetches,
        )
        perf.data["markdownParse"] = {
            "pages": len(pages),
            "failed": len(usage_map.failed_pages),
            "durationMs": perf.elapsed_ms(parse_started),
        }

        await progress.emit(STAGE_PROCESSING, "Resolving linked content", 70)
        reconcile_linked(index, audit_fold, usage_map, site, lost_linked, stats)
        await progress.emit_snapshot(index.entries())

        await progress.emit(STAGE_PROCESSING, "Reconciled media entries", 78)
        log_stats(stats)
        await progress.emit(STAGE_PROCESSING, "Building usage index", 83)

    async def _persist(
        self,
        site: SiteRef,
        index: EntryIndex,
        mode: str,
        stats: ReconcileStats,
        progress: ProgressChannel,
        perf: _Perf,
    ) -> BuildResult:
        entries = sort_media_data(index.entries())
        usage = index.usage_index()

        save_started = time.monotonic()
        await progress.emit(STAGE_SAVING, f"Saving {len(entries)} entries", 85)
        await self.index_store.save_index(site.org, site.repo, entries, usage)
        await progress.emit(STAGE_SAVING, "Saving index metadata", 87)

        meta = IndexMeta(
            last_fetch_time=now_ms(),
            entries_count=len(entries),
            media_count=len(index.hashes()),
            usage_count=len(usage),
            last_build_mode=mode,
        )
        await self.index_store.save_meta(site.org, site.repo, meta)
        await progress.emit(STAGE_SAVING, "Index saved", 90)

        perf.data["saveDurationMs"] = perf.elapsed_ms(save_started)
        perf.data["indexEntries"] = meta.entries_count
        perf.data["mediaCount"] = meta.media_count
        perf.data["usageCount"] = meta.usage_count

        duration = format_elapsed(time.monotonic() - perf.started)
        await progress.emit(STAGE_COMPLETE, f"Index build complete in {duration}", 100)
        return BuildResult(
            entries=entries,
            has_changes=mode == BUILD_MODE_FULL or stats.has_changes,
            duration=duration,
            mode=mode,
        )

    # =========================================================================
    # LOG STREAMING
    # =========================================================================

    async def _stream_logs(
        self,
        site: SiteRef,
        since: Optional[int],
        on_audit: Callable[[List[Dict[str, Any]]], Optional[Awaitable[None]]],
        on_media: Callable[[List[Dict[str, Any]]], Optional[Awaitable[None]]],
        perf: _Perf,
    ) -> Tuple[int, int]:
        """Stream both logs concurrently; a failure cancels the other stream."""

        async def timed(log_name: str, perf_key: str, on_page) -> int:
            started = time.monotonic()
            chunks = 0

            async def counted(entries):
                nonlocal chunks
                chunks += 1
                result = on_page(entries)
                if inspect.isawaitable(result):
                    await result

            count = await self.log_client.stream_log(
                log_name, site.org, site.repo, site.ref, since, counted,
            )
            perf.data[perf_key] = {
                "chunks": chunks,
                "entries": count,
                "durationMs": perf.elapsed_ms(started),
            }
            return count

        tasks = [
            asyncio.ensure_future(timed(AUDIT_LOG, "auditlog", on_audit)),
            asyncio.ensure_future(timed(MEDIA_LOG, "medialog", on_media)),
        ]
        try:
            audit_count, media_count = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return audit_count, media_count

    @staticmethod
    def _discovering_rows(audit_fold: AuditLogFold, site: SiteRef) -> List[MediaEntry]:
        return [
            linked_content_entry(path, "", event, STATUS_DISCOVERING, site.org, site.repo, site.ref)
            for path, event in audit_fold.linked_files.items()
        ]
