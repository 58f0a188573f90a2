"""
Read-side views over the media index.

Usage:
    from media_insights.core.indexing.query import MediaIndexView, sort_media_data

    view = MediaIndexView.from_entries(entries)
    for item in sort_media_data(view.unique_items):
        print(item.name, len(view.usage_for(view.key_of(item))))
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from media_insights.core.indexing.entries import MediaEntry
from media_insights.core.indexing.paths import doc_depth
from media_insights.core.indexing.progress import snapshot_key

# Depth assigned to unreferenced rows so they sort after any page
_UNREFERENCED_DEPTH = 999


def _sort_key(entry: MediaEntry):
    depth = doc_depth(entry.doc) if entry.doc else _UNREFERENCED_DEPTH
    return (-(entry.timestamp or 0), depth, (entry.name or "").lower(), entry.doc, entry.hash)


def sort_media_data(entries: Iterable[MediaEntry]) -> List[MediaEntry]:
    """Newest first, then shallower referencing page, then name (case-insensitive)."""
    return sorted(entries, key=_sort_key)


@dataclass
class MediaIndexView:
    """Unique assets, per-asset usage and folder paths of a loaded index."""
    unique_items: List[MediaEntry] = field(default_factory=list)
    usage_index: Dict[str, List[MediaEntry]] = field(default_factory=dict)
    folder_paths: Set[str] = field(default_factory=set)
    _pages_by_hash: Dict[str, Set[str]] = field(default_factory=dict, repr=False)

    @staticmethod
    def key_of(entry: MediaEntry) -> str:
        return snapshot_key(entry)

    @classmethod
    def from_entries(cls, entries: Iterable[MediaEntry]) -> "MediaIndexView":
        unique: Dict[str, MediaEntry] = {}
        usage: Dict[str, List[MediaEntry]] = {}
        folders: Set[str] = set()
        pages_by_hash: Dict[str, Set[str]] = {}

        for entry in entries:
            key = cls.key_of(entry)
            current = unique.get(key)
            if current is None or entry.timestamp > current.timestamp:
                unique[key] = entry

            if entry.doc:
                usage.setdefault(key, []).append(entry)
                pages_by_hash.setdefault(entry.hash, set()).add(entry.doc)
                last_slash = entry.doc.rfind("/")
                if last_slash > 0:
                    folders.add(entry.doc[:last_slash])

        return cls(
            unique_items=list(unique.values()),
            usage_index=usage,
            folder_paths=folders,
            _pages_by_hash=pages_by_hash,
        )

    def usage_for(self, key: str) -> List[MediaEntry]:
        """Referencing rows of an asset, by dedupe key."""
        return self.usage_index.get(key, [])

    def pages_using(self, media_hash: str) -> Set[str]:
        return set(self._pages_by_hash.get(media_hash, set()))

    def is_used(self, media_hash: str) -> bool:
        return bool(self._pages_by_hash.get(media_hash))
