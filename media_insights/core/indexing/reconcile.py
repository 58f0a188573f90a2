"""
Reconciliation of log folds into media entries.

Full and incremental builds run the same steps; they differ only in the
starting index (empty vs. the persisted one) and in the log window that
produced the folds:

1. Page sessions: each page's rows from the media log are replaced by its
   latest session (removed hashes become orphan candidates).
2. Previewed-empty pages (incremental only): a page previewed in the window
   with no media drops its media-log rows.
3. Deleted pages drop every row.
4. Standalone uploads become unused rows when nothing references them.
5. Orphan sweep: candidates left with no rows get one unused row unless an
   unlink/delete event at least as new exists.
6. Linked content (PDF/SVG/fragment) and external media are re-derived for
   the pages parsed in this pass; other pages keep their rows.

Usage:
    index = EntryIndex(existing)
    stats = reconcile(index, audit_fold, media_fold, usage_map, site, previewed_empty=True)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from media_insights.core.constants import STATUS_REFERENCED, STATUS_UNUSED
from media_insights.core.indexing.entries import (
    MediaEntry,
    external_media_entry,
    from_media_event,
    is_external_entry,
    is_linked_content_entry,
    is_media_log_entry,
    linked_content_entry,
)
from media_insights.core.indexing.entry_index import EntryIndex
from media_insights.core.indexing.folds import AuditLogFold, MediaLogFold
from media_insights.core.indexing.paths import is_linked_content_path

logger = logging.getLogger("media_insights.indexing.reconcile")


@dataclass(frozen=True)
class SiteRef:
    """Site coordinates used to build delivery URLs."""
    org: str
    repo: str
    ref: str = "main"


@dataclass
class ReconcileStats:
    """Counters for one reconciliation pass."""
    added: int = 0
    removed: int = 0
    orphaned: int = 0
    linked_rows: int = 0
    external_rows: int = 0
    touched_pages: Set[str] = field(default_factory=set)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.orphaned or self.linked_rows or self.external_rows)


def _keep_newest_entry(target: Dict[str, MediaEntry], entry: MediaEntry) -> None:
    current = target.get(entry.hash)
    if current is None or entry.timestamp >= current.timestamp:
        target[entry.hash] = entry


# =============================================================================
# MEDIA LOG
# =============================================================================

def apply_page_sessions(
    index: EntryIndex,
    media_fold: MediaLogFold,
    deleted_pages: Set[str],
    candidates: Dict[str, MediaEntry],
    stats: ReconcileStats,
) -> None:
    """Replace each page's media-log rows with its latest session."""
    for doc, session in media_fold.sessions.items():
        if doc in deleted_pages:
            for event in session.events.values():
                _keep_newest_entry(candidates, from_media_event(event))
            continue

        stats.touched_pages.add(doc)
        old_hashes = index.hashes_for_doc(doc, is_media_log_entry)
        new_hashes = session.hashes

        for media_hash in old_hashes - new_hashes:
            removed = index.remove(media_hash, doc)
            if removed is not None:
                stats.removed += 1
                _keep_newest_entry(candidates, removed)

        for media_hash, event in session.events.items():
            if media_hash not in old_hashes:
                stats.added += 1
            index.upsert(from_media_event(event, doc))

        if old_hashes != new_hashes:
            logger.debug(
                f"Page {doc}: -{len(old_hashes - new_hashes)} +{len(new_hashes - old_hashes)} media"
            )

    for event in media_fold.superseded.values():
        _keep_newest_entry(candidates, from_media_event(event))


def apply_previewed_empty(
    index: EntryIndex,
    previewed_pages: Iterable[str],
    media_fold: MediaLogFold,
    candidates: Dict[str, MediaEntry],
    stats: ReconcileStats,
) -> None:
    """Pages previewed with no media in the window lose their media-log rows."""
    for doc in previewed_pages:
        if doc in media_fold.sessions:
            continue
        removed_rows = index.remove_doc(doc, is_media_log_entry)
        if removed_rows:
            logger.debug(f"Page {doc} previewed with no media, removing {len(removed_rows)} rows")
            stats.touched_pages.add(doc)
        for row in removed_rows:
            stats.removed += 1
            _keep_newest_entry(candidates, row)


def apply_deleted_pages(
    index: EntryIndex,
    deleted_pages: Set[str],
    candidates: Dict[str, MediaEntry],
    stats: ReconcileStats,
) -> Set[str]:
    """
    Drop every row of deleted pages.

    Returns:
        Linked content paths that lost a reference
    """
    linked_paths: Set[str] = set()
    for doc in deleted_pages:
        for row in index.remove_doc(doc):
            stats.removed += 1
            if is_media_log_entry(row):
                _keep_newest_entry(candidates, row)
            elif is_linked_content_entry(row):
                linked_paths.add(row.hash)
    return linked_paths


def apply_standalone_uploads(index: EntryIndex, media_fold: MediaLogFold, stats: ReconcileStats) -> None:
    """Unreferenced uploads get one unused row (newest wins)."""
    for media_hash, event in media_fold.standalone.items():
        if index.is_referenced(media_hash):
            continue
        if index.ensure_orphan(from_media_event(event)):
            stats.orphaned += 1


def sweep_orphans(
    index: EntryIndex,
    media_fold: MediaLogFold,
    candidates: Dict[str, MediaEntry],
    stats: ReconcileStats,
) -> None:
    """
    Give orphan candidates left without rows a single unused row.

    Candidates with an unlink/delete event in the media log are dropped
    instead.
    """
    for media_hash, entry in candidates.items():
        if index.has_rows(media_hash):
            continue
        if media_hash in media_fold.unlinked:
            continue
        if index.ensure_orphan(entry):
            stats.orphaned += 1


# =============================================================================
# LINKED CONTENT
# =============================================================================

def apply_linked_content(
    index: EntryIndex,
    audit_fold: AuditLogFold,
    usage_map,
    site: SiteRef,
    extra_candidates: Optional[Set[str]] = None,
    stats: Optional[ReconcileStats] = None,
) -> None:
    """
    Re-derive PDF, SVG and fragment rows for the pages parsed this pass.

    Only rows whose page was parsed are rewritten. A path gets an unused row
    only when no page references it.
    """
    stats = stats if stats is not None else ReconcileStats()
    parsed_pages: Set[str] = set(usage_map.parsed_pages)

    deleted_files = {p for p in audit_fold.deleted_files if is_linked_content_path(p)}
    for path in deleted_files:
        for row in index.rows_for_hash(path):
            if is_linked_content_entry(row):
                index.remove(row.hash, row.doc)
                stats.removed += 1

    candidates: Set[str] = set(audit_fold.linked_files) | usage_map.linked_paths()
    candidates |= extra_candidates or set()
    for doc in parsed_pages:
        candidates |= index.hashes_for_doc(doc, is_linked_content_entry)
    candidates -= deleted_files

    for path in sorted(candidates):
        references = [doc for doc in usage_map.pages_for(path) if doc in parsed_pages]
        file_event = _file_event(index, audit_fold, path)

        for row in index.rows_for_hash(path):
            if is_linked_content_entry(row) and row.doc in parsed_pages and row.doc not in references:
                index.remove(row.hash, row.doc)
                stats.removed += 1

        for doc in references:
            row = linked_content_entry(path, doc, file_event, STATUS_REFERENCED, site.org, site.repo, site.ref)
            if index.get(path, doc) != row:
                index.upsert(row)
                stats.linked_rows += 1

        if not index.is_referenced(path):
            index.upsert(linked_content_entry(path, "", file_event, STATUS_UNUSED, site.org, site.repo, site.ref))


def _file_event(index: EntryIndex, audit_fold: AuditLogFold, path: str) -> Optional[Dict[str, Any]]:
    """Latest audit event of a file, else the newest known row for it."""
    event = audit_fold.files.get(path)
    if event is not None:
        return event
    rows = [row for row in index.rows_for_hash(path) if is_linked_content_entry(row)]
    if not rows:
        return None
    newest = max(rows, key=lambda row: row.timestamp)
    return {"timestamp": newest.timestamp, "user": newest.user}


def apply_external_media(index: EntryIndex, usage_map, stats: Optional[ReconcileStats] = None) -> None:
    """Re-derive external media rows for the pages parsed this pass. Never orphaned."""
    stats = stats if stats is not None else ReconcileStats()
    parsed_pages: Set[str] = set(usage_map.parsed_pages)

    for doc in parsed_pages:
        for row in index.rows_for_doc(doc, is_external_entry):
            usage = usage_map.external_media.get(row.hash)
            if usage is None or doc not in usage.pages:
                index.remove(row.hash, row.doc)
                stats.removed += 1

    for url, usage in usage_map.external_media.items():
        for doc in usage.pages:
            if doc not in parsed_pages:
                continue
            entry = external_media_entry(url, doc, usage.latest_timestamp)
            if entry is not None and index.get(url, doc) != entry:
                index.upsert(entry)
                stats.external_rows += 1


# =============================================================================
# PASS
# =============================================================================

def pages_to_parse(audit_fold: AuditLogFold, media_fold: MediaLogFold) -> List[Dict[str, Any]]:
    """
    Page events whose markdown should be resolved.

    Live pages from the audit log, plus pages that only appear through media
    sessions (with the session timestamp).
    """
    events = {e["path"]: e for e in audit_fold.page_events()}
    deleted = audit_fold.deleted_pages
    for doc, session in media_fold.sessions.items():
        if doc not in events and doc not in deleted:
            events[doc] = {"path": doc, "timestamp": session.timestamp}
    return list(events.values())


def reconcile_media(
    index: EntryIndex,
    audit_fold: AuditLogFold,
    media_fold: MediaLogFold,
    previewed_empty: bool = False,
    stats: Optional[ReconcileStats] = None,
) -> Set[str]:
    """
    Fold the media log and page deletions into the index in place.

    Args:
        index: Starting entries (empty for a full build)
        audit_fold: Folded audit log of the pass
        media_fold: Folded media log of the pass
        previewed_empty: Treat pages previewed without media as emptied
        stats: Counters to update

    Returns:
        Linked content paths that lost a reference through page deletion
    """
    stats = stats if stats is not None else ReconcileStats()
    candidates: Dict[str, MediaEntry] = {}
    deleted_pages = audit_fold.deleted_pages

    apply_page_sessions(index, media_fold, deleted_pages, candidates, stats)
    if previewed_empty:
        apply_previewed_empty(index, audit_fold.live_pages, media_fold, candidates, stats)
    lost_linked = apply_deleted_pages(index, deleted_pages, candidates, stats)
    apply_standalone_uploads(index, media_fold, stats)
    sweep_orphans(index, media_fold, candidates, stats)
    stats.touched_pages |= set(audit_fold.pages)
    return lost_linked


def reconcile_linked(
    index: EntryIndex,
    audit_fold: AuditLogFold,
    usage_map,
    site: SiteRef,
    lost_linked: Optional[Set[str]] = None,
    stats: Optional[ReconcileStats] = None,
) -> None:
    """Fold resolved linked content and external media into the index in place."""
    stats = stats if stats is not None else ReconcileStats()
    apply_linked_content(index, audit_fold, usage_map, site, lost_linked, stats)
    apply_external_media(index, usage_map, stats)


def reconcile(
    index: EntryIndex,
    audit_fold: AuditLogFold,
    media_fold: MediaLogFold,
    usage_map,
    site: SiteRef,
    previewed_empty: bool = False,
) -> ReconcileStats:
    """
    Fold one pass of log data into the index in place.

    Returns:
        ReconcileStats for logging
    """
    stats = ReconcileStats()
    lost_linked = reconcile_media(index, audit_fold, media_fold, previewed_empty, stats)
    reconcile_linked(index, audit_fold, usage_map, site, lost_linked, stats)
    log_stats(stats)
    return stats


def log_stats(stats: ReconcileStats) -> None:
    logger.info(
        f"Reconciled {len(stats.touched_pages)} pages: +{stats.added} -{stats.removed} media rows, "
        f"{stats.orphaned} orphans, {stats.linked_rows} linked, {stats.external_rows} external"
    )
