"""
In-memory entry store keyed by (hash, doc).

Rows live in one dict keyed by `(hash, doc)`, with two secondary indexes
(`hash -> docs` and `doc -> hashes`) kept in step on every mutation. All
reconciliation code mutates entries through this class so that the orphan
invariant holds at every step:

    for a given hash there is at most one row with an empty doc, and it
    exists only when the hash has no row with a non-empty doc.

Usage:
    index = EntryIndex(existing_entries)
    index.upsert(entry)              # referenced row, drops the orphan
    removed = index.remove(hash, doc)
    index.ensure_orphan(removed)     # orphan only if nothing else is left
"""

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from media_insights.core.constants import STATUS_REFERENCED
from media_insights.core.indexing.entries import MediaEntry

EntryKey = Tuple[str, str]
EntryFilter = Callable[[MediaEntry], bool]


class EntryIndex:
    """Arena of media rows with hash and doc secondary indexes."""

    def __init__(self, entries: Optional[Iterable[MediaEntry]] = None):
        self._rows: Dict[EntryKey, MediaEntry] = {}
        self._docs_by_hash: Dict[str, Set[str]] = {}
        self._hashes_by_doc: Dict[str, Set[str]] = {}
        for entry in entries or []:
            self.upsert(entry)

    # =========================================================================
    # READS
    # =========================================================================

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[MediaEntry]:
        return iter(list(self._rows.values()))

    def __contains__(self, key: EntryKey) -> bool:
        return key in self._rows

    def get(self, hash_: str, doc: str) -> Optional[MediaEntry]:
        return self._rows.get((hash_, doc))

    def entries(self) -> List[MediaEntry]:
        return list(self._rows.values())

    def hashes(self) -> Set[str]:
        return set(self._docs_by_hash)

    def docs(self) -> Set[str]:
        return {doc for doc in self._hashes_by_doc if doc}

    def rows_for_hash(self, hash_: str) -> List[MediaEntry]:
        return [self._rows[(hash_, doc)] for doc in self._docs_by_hash.get(hash_, ())]

    def rows_for_doc(self, doc: str, predicate: Optional[EntryFilter] = None) -> List[MediaEntry]:
        rows = [self._rows[(hash_, doc)] for hash_ in self._hashes_by_doc.get(doc, ())]
        if predicate is not None:
            rows = [row for row in rows if predicate(row)]
        return rows

    def hashes_for_doc(self, doc: str, predicate: Optional[EntryFilter] = None) -> Set[str]:
        return {row.hash for row in self.rows_for_doc(doc, predicate)}

    def has_rows(self, hash_: str) -> bool:
        return bool(self._docs_by_hash.get(hash_))

    def is_referenced(self, hash_: str) -> bool:
        return any(doc for doc in self._docs_by_hash.get(hash_, ()))

    def orphan(self, hash_: str) -> Optional[MediaEntry]:
        return self._rows.get((hash_, ""))

    def usage_index(self, predicate: Optional[EntryFilter] = None) -> Dict[str, Set[str]]:
        """Reverse index page -> hashes, restricted to referenced rows."""
        usage: Dict[str, Set[str]] = {}
        for doc in self.docs():
            hashes = self.hashes_for_doc(doc, predicate)
            if hashes:
                usage[doc] = hashes
        return usage

    # =========================================================================
    # WRITES
    # =========================================================================

    def _put(self, entry: MediaEntry) -> None:
        self._rows[(entry.hash, entry.doc)] = entry
        self._docs_by_hash.setdefault(entry.hash, set()).add(entry.doc)
        self._hashes_by_doc.setdefault(entry.doc, set()).add(entry.hash)

    def _drop(self, hash_: str, doc: str) -> Optional[MediaEntry]:
        entry = self._rows.pop((hash_, doc), None)
        if entry is None:
            return None
        docs = self._docs_by_hash.get(hash_)
        if docs is not None:
            docs.discard(doc)
            if not docs:
                del self._docs_by_hash[hash_]
        hashes = self._hashes_by_doc.get(doc)
        if hashes is not None:
            hashes.discard(hash_)
            if not hashes:
                del self._hashes_by_doc[doc]
        return entry

    def upsert(self, entry: MediaEntry, newest_wins: bool = False) -> bool:
        """
        Insert or replace the row for (hash, doc).

        A row with a page removes that hash's orphan. An orphan is only
        stored when the hash has no referenced rows.

        Args:
            entry: Row to store
            newest_wins: Keep an existing row whose timestamp is newer

        Returns:
            True if the row was stored
        """
        if not entry.hash:
            return False

        existing = self._rows.get((entry.hash, entry.doc))
        if newest_wins and existing is not None and existing.timestamp > entry.timestamp:
            return False

        if entry.doc:
            if entry.status != STATUS_REFERENCED:
                entry.status = STATUS_REFERENCED
            self._drop(entry.hash, "")
        elif self.is_referenced(entry.hash):
            return False

        self._put(entry)
        return True

    def remove(self, hash_: str, doc: str) -> Optional[MediaEntry]:
        """Remove one row and return it."""
        return self._drop(hash_, doc)

    def remove_doc(self, doc: str, predicate: Optional[EntryFilter] = None) -> List[MediaEntry]:
        """Remove the rows of a page (optionally only those matching predicate)."""
        removed = []
        for row in self.rows_for_doc(doc, predicate):
            dropped = self._drop(row.hash, row.doc)
            if dropped is not None:
                removed.append(dropped)
        return removed

    def ensure_orphan(self, entry: MediaEntry) -> bool:
        """
        Leave one unused row for an asset that lost its last reference.

        No-op when the hash still has referenced rows. An existing orphan is
        replaced only by a newer one.

        Returns:
            True if an orphan row was written
        """
        if self.is_referenced(entry.hash):
            return False
        current = self.orphan(entry.hash)
        if current is not None and current.timestamp >= entry.timestamp:
            return False
        self._put(entry.as_orphan())
        return True
