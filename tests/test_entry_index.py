"""
Tests for the (hash, doc) entry arena and the orphan invariant.
"""

from media_insights.core.constants import STATUS_REFERENCED, STATUS_UNUSED
from media_insights.core.indexing.entries import (
    MediaEntry,
    from_media_event,
    is_media_log_entry,
    linked_content_entry,
)
from media_insights.core.indexing.entry_index import EntryIndex


def entry(hash_="h1", doc="/a", timestamp=100, **kwargs):
    return MediaEntry(
        hash=hash_,
        url=kwargs.pop("url", f"https://x/{hash_}.png"),
        name=f"{hash_}.png",
        timestamp=timestamp,
        operation=kwargs.pop("operation", "ingest"),
        type="image",
        doc=doc,
        status=STATUS_REFERENCED if doc else STATUS_UNUSED,
        **kwargs,
    )


def assert_orphan_invariant(index: EntryIndex):
    for hash_ in index.hashes():
        rows = index.rows_for_hash(hash_)
        orphans = [r for r in rows if not r.doc]
        assert len(orphans) <= 1
        if orphans:
            assert all(not r.doc for r in rows)


class TestEntryIndex:

    def test_secondary_indexes_follow_mutations(self):
        index = EntryIndex([entry("h1", "/a"), entry("h2", "/a"), entry("h1", "/b")])

        assert index.hashes_for_doc("/a") == {"h1", "h2"}
        assert {r.doc for r in index.rows_for_hash("h1")} == {"/a", "/b"}

        index.remove("h1", "/a")
        assert index.hashes_for_doc("/a") == {"h2"}
        assert {r.doc for r in index.rows_for_hash("h1")} == {"/b"}
        assert ("h1", "/a") not in index

    def test_referenced_row_replaces_orphan(self):
        index = EntryIndex([entry("h1", "")])
        assert index.orphan("h1") is not None

        index.upsert(entry("h1", "/a", timestamp=200))

        assert index.orphan("h1") is None
        assert index.is_referenced("h1")
        assert_orphan_invariant(index)

    def test_orphan_refused_while_referenced(self):
        index = EntryIndex([entry("h1", "/a")])
        assert not index.upsert(entry("h1", ""))
        assert not index.ensure_orphan(entry("h1", "/a"))
        assert len(index) == 1

    def test_ensure_orphan_newest_wins(self):
        index = EntryIndex()
        assert index.ensure_orphan(entry("h1", "/a", timestamp=100))
        assert not index.ensure_orphan(entry("h1", "/b", timestamp=50))
        assert index.ensure_orphan(entry("h1", "/c", timestamp=300))

        orphan = index.orphan("h1")
        assert orphan.timestamp == 300
        assert orphan.doc == ""
        assert orphan.status == STATUS_UNUSED
        assert len(index) == 1

    def test_upsert_newest_wins_keeps_newer_row(self):
        index = EntryIndex([entry("h1", "/a", timestamp=300)])
        assert not index.upsert(entry("h1", "/a", timestamp=100), newest_wins=True)
        assert index.get("h1", "/a").timestamp == 300

    def test_remove_doc_with_predicate(self):
        linked = entry("/docs/a.pdf", "/a", operation="auditlog-parsed")
        index = EntryIndex([entry("h1", "/a"), linked])

        removed = index.remove_doc("/a", is_media_log_entry)

        assert [r.hash for r in removed] == ["h1"]
        assert index.hashes_for_doc("/a") == {"/docs/a.pdf"}

    def test_usage_index_excludes_orphans(self):
        index = EntryIndex([entry("h1", "/a"), entry("h2", ""), entry("h3", "/b")])
        assert index.usage_index() == {"/a": {"h1"}, "/b": {"h3"}}

    def test_rows_without_hash_are_ignored(self):
        index = EntryIndex([entry("", "/a")])
        assert len(index) == 0


class TestEntryFactories:

    def test_non_numeric_timestamps_read_as_zero(self):
        event = {"mediaHash": "h1", "path": "https://x/h1.png", "timestamp": "yesterday", "operation": "ingest"}

        assert from_media_event(event, "/a").timestamp == 0
        assert MediaEntry.from_dict({"hash": "h1", "timestamp": "n/a"}).timestamp == 0
        row = linked_content_entry("/docs/a.pdf", "/a", {"timestamp": [1]}, STATUS_REFERENCED, "org", "site")
        assert row.timestamp == 0
        assert linked_content_entry("/docs/a.pdf", "", None, STATUS_UNUSED, "org", "site").timestamp == 0
