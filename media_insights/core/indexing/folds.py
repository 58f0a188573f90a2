"""
Incremental folds over the two event logs.

Both logs arrive in pages. Each fold consumes one page at a time and keeps
only the state reconciliation needs, so the full history never has to be
held in memory at once:

- AuditLogFold keeps the latest preview event per page and per file.
- MediaLogFold keeps, per page, the media "session" of its latest preview
  (all media events sharing the newest timestamp), plus standalone uploads,
  explicitly unlinked hashes, and hashes of sessions that were superseded.

Both folds are order independent: the result is the same whatever order
the pages of a log arrive in.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from media_insights.core.constants import DELETE_METHOD, PREVIEW_ROUTE, UNLINK_OPERATIONS
from media_insights.core.indexing.media_types import media_path_from_url
from media_insights.core.indexing.paths import (
    is_linked_content_path,
    is_page,
    normalize_page_path,
    to_absolute_file_path,
)
from media_insights.utils.time_utils import event_timestamp

LogEntry = Dict[str, Any]


def _keep_newest(target: Dict[str, LogEntry], key: str, entry: LogEntry) -> None:
    current = target.get(key)
    if current is None or event_timestamp(entry) >= event_timestamp(current):
        target[key] = entry


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditLogFold:
    """Latest preview event per page and per file."""

    def __init__(self):
        self.pages: Dict[str, LogEntry] = {}
        self.files: Dict[str, LogEntry] = {}
        self.entry_count = 0
        self.preview_count = 0

    def add_chunk(self, entries: Iterable[LogEntry]) -> None:
        for entry in entries:
            self.entry_count += 1
            if not entry or entry.get("route") != PREVIEW_ROUTE or not entry.get("path"):
                continue
            self.preview_count += 1
            path = entry["path"]
            if is_page(path):
                _keep_newest(self.pages, normalize_page_path(path), entry)
            else:
                _keep_newest(self.files, to_absolute_file_path(path), entry)

    @property
    def has_previews(self) -> bool:
        return self.preview_count > 0

    @property
    def deleted_pages(self) -> Set[str]:
        return {p for p, e in self.pages.items() if e.get("method") == DELETE_METHOD}

    @property
    def deleted_files(self) -> Set[str]:
        return {p for p, e in self.files.items() if e.get("method") == DELETE_METHOD}

    @property
    def live_pages(self) -> Dict[str, LogEntry]:
        return {p: e for p, e in self.pages.items() if e.get("method") != DELETE_METHOD}

    @property
    def linked_files(self) -> Dict[str, LogEntry]:
        """Live PDF, SVG and fragment files seen in the audit log."""
        return {
            p: e for p, e in self.files.items()
            if is_linked_content_path(p) and e.get("method") != DELETE_METHOD
        }

    def page_events(self) -> List[LogEntry]:
        """Latest event of every live page, with a normalized path."""
        return [
            {**event, "path": page}
            for page, event in self.live_pages.items()
        ]


# =============================================================================
# MEDIA LOG
# =============================================================================

@dataclass
class MediaSession:
    """Media events of one page preview."""
    timestamp: int
    events: Dict[str, LogEntry] = field(default_factory=dict)

    @property
    def hashes(self) -> Set[str]:
        return set(self.events)


class MediaLogFold:
    """
    Page -> latest media session, plus standalone uploads.

    A media event with a newer timestamp than the page's current session
    starts a new session that replaces the old one outright; an equal
    timestamp joins the session; an older one is ignored. Hashes that only
    appeared in superseded or ignored sessions are kept as orphan
    candidates.
    """

    def __init__(self):
        self.sessions: Dict[str, MediaSession] = {}
        self.standalone: Dict[str, LogEntry] = {}
        self.unlinked: Dict[str, int] = {}
        self.superseded: Dict[str, LogEntry] = {}
        self.entry_count = 0

    def add_chunk(self, entries: Iterable[LogEntry]) -> None:
        for entry in entries:
            self.entry_count += 1
            self._add(entry)

    def _add(self, entry: LogEntry) -> None:
        if not entry:
            return
        media_hash = entry.get("mediaHash")
        if not media_hash:
            return

        if entry.get("operation") in UNLINK_OPERATIONS:
            self.unlinked[media_hash] = max(self.unlinked.get(media_hash, 0), event_timestamp(entry))
            return

        resource_path = entry.get("resourcePath")
        if resource_path:
            doc = normalize_page_path(resource_path)
            if self.is_self_reference(entry, doc):
                _keep_newest(self.standalone, media_hash, entry)
                return
            self._add_to_session(doc, media_hash, entry)
        elif entry.get("originalFilename"):
            _keep_newest(self.standalone, media_hash, entry)

    @staticmethod
    def is_self_reference(entry: LogEntry, doc: str) -> bool:
        """
        Media whose resourcePath is its own path.

        Uploads made straight into the media library record the asset itself
        as the resource. Detected by comparing paths, which is a heuristic.
        """
        own_path = media_path_from_url(entry.get("path"))
        return bool(own_path) and normalize_page_path(own_path) == doc

    def _add_to_session(self, doc: str, media_hash: str, entry: LogEntry) -> None:
        timestamp = event_timestamp(entry)
        session = self.sessions.get(doc)

        if session is None or timestamp > session.timestamp:
            if session is not None:
                for old_hash, old_event in session.events.items():
                    _keep_newest(self.superseded, old_hash, old_event)
            session = MediaSession(timestamp=timestamp)
            self.sessions[doc] = session
        elif timestamp < session.timestamp:
            _keep_newest(self.superseded, media_hash, entry)
            return

        session.events[media_hash] = entry

    @property
    def has_entries(self) -> bool:
        return self.entry_count > 0

    def session_for(self, doc: str) -> Optional[MediaSession]:
        return self.sessions.get(doc)
