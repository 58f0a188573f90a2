"""
Tests for index persistence and the advisory build lock.
"""

import asyncio
import json

import pytest

from media_insights.core.constants import STATUS_REFERENCED, STATUS_UNUSED
from media_insights.core.indexing.entries import MediaEntry
from media_insights.core.shared.lock_service import IndexLockedError, IndexLockService
from media_insights.core.storage.index_store import IndexStore, IndexStoreError
from media_insights.models.index_models import IndexLock, IndexMeta
from media_insights.utils.time_utils import now_ms

INDEX_KEY = "org/site/.da/media-insights/index.json"
META_KEY = "org/site/.da/media-insights/index-meta.json"
LOCK_KEY = "org/site/.da/media-insights/index-lock.json"


def sample_entries():
    return [
        MediaEntry(hash="h1", url="https://x/media_h1.png", name="media_h1.png", timestamp=100,
                   user="u", operation="ingest", type="image", doc="/a", status=STATUS_REFERENCED),
        MediaEntry(hash="h2", url="https://x/media_h2.png", name="media_h2.png", timestamp=50,
                   operation="ingest", type="image", doc="", status=STATUS_UNUSED),
    ]


class TestIndexStore:

    @pytest.mark.asyncio
    async def test_index_layout(self, index_store, object_store):
        await index_store.save_index("org", "site", sample_entries(), {"/a": {"h1"}})

        payload = json.loads(object_store.objects[INDEX_KEY][0])
        assert payload[":type"] == "multi-sheet"
        assert payload[":names"] == ["media", "usage"]
        assert payload["media"]["total"] == 2
        assert list(payload["media"]["data"][0].keys()) == [
            "hash", "url", "name", "timestamp", "user", "operation", "type", "doc", "status",
        ]
        assert payload["usage"]["data"] == [{"page": "/a", "hashes": '["h1"]'}]

    @pytest.mark.asyncio
    async def test_load_index_round_trip(self, index_store):
        await index_store.save_index("org", "site", sample_entries(), {"/a": {"h1"}})

        entries, usage = await index_store.load_index("org", "site")

        assert entries == sample_entries()
        assert usage == {"/a": {"h1"}}

    @pytest.mark.asyncio
    async def test_missing_index_is_empty(self, index_store):
        assert await index_store.load_index("org", "site") == ([], {})
        check = await index_store.check_index("org", "site")
        assert not check.exists
        assert check.last_modified is None

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, index_store, object_store):
        payload = {
            ":type": "multi-sheet",
            ":names": ["media", "usage"],
            "media": {"data": [{"hash": "h1", "doc": "/a", "timestamp": "100"}, {"url": "no-hash"}, "junk"]},
            "usage": {"data": [{"page": "/a", "hashes": "not json"}, {"hashes": "[]"}, {"page": "/b", "hashes": '["h1"]'}]},
        }
        await object_store.put_object(INDEX_KEY, json.dumps(payload).encode())

        entries, usage = await index_store.load_index("org", "site")

        assert [(e.hash, e.timestamp, e.status) for e in entries] == [("h1", 100, STATUS_REFERENCED)]
        assert usage == {"/b": {"h1"}}

    @pytest.mark.asyncio
    async def test_unreadable_json_is_ignored(self, index_store, object_store):
        await object_store.put_object(META_KEY, b"{not json")
        assert await index_store.load_meta("org", "site") is None

    @pytest.mark.asyncio
    async def test_meta_round_trip_uses_camel_case(self, index_store, object_store):
        meta = IndexMeta(last_fetch_time=123, entries_count=2, media_count=2, usage_count=1, last_build_mode="full")
        await index_store.save_meta("org", "site", meta)

        payload = json.loads(object_store.objects[META_KEY][0])
        assert payload[":type"] == "sheet"
        assert payload["data"][0]["lastFetchTime"] == 123
        assert payload["data"][0]["lastRefreshBy"] == "media-indexer"

        loaded = await index_store.load_meta("org", "site")
        assert loaded == meta

    @pytest.mark.asyncio
    async def test_write_failure_raises_store_error(self, object_store):
        class FailingStore(type(object_store)):
            async def put_object(self, key, data, content_type="application/json"):
                raise OSError("disk full")

        store = IndexStore(FailingStore())

        with pytest.raises(IndexStoreError):
            await store.save_index("org", "site", [], {})

    @pytest.mark.asyncio
    async def test_check_index_reports_modification_time(self, index_store):
        before = now_ms()
        await index_store.save_index("org", "site", [], {})

        check = await index_store.check_index("org", "site")

        assert check.exists
        assert check.last_modified >= before


class TestIndexLockService:

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, index_store, object_store):
        service = IndexLockService(index_store, max_age_ms=30 * 60 * 1000)

        lock = await service.acquire("org", "site")

        assert lock.locked
        assert LOCK_KEY in object_store.objects
        assert await service.get_active_lock("org", "site") is not None

        await service.release("org", "site")
        assert LOCK_KEY not in object_store.objects

    @pytest.mark.asyncio
    async def test_fresh_lock_blocks(self, index_store):
        service = IndexLockService(index_store, max_age_ms=30 * 60 * 1000)
        await index_store.save_lock("org", "site", IndexLock(timestamp=now_ms() - 5 * 60 * 1000))

        with pytest.raises(IndexLockedError) as exc_info:
            await service.acquire("org", "site")

        assert "Lock created 5 minutes ago" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stale_lock_is_taken_over(self, index_store):
        service = IndexLockService(index_store, max_age_ms=30 * 60 * 1000)
        stale = now_ms() - 31 * 60 * 1000
        await index_store.save_lock("org", "site", IndexLock(timestamp=stale))

        assert await service.get_active_lock("org", "site") is None
        lock = await service.acquire("org", "site")

        assert lock.timestamp > stale

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, index_store, object_store):
        service = IndexLockService(index_store)

        with pytest.raises(ValueError):
            async with service.lock("org", "site"):
                assert LOCK_KEY in object_store.objects
                raise ValueError("build failed")

        assert LOCK_KEY not in object_store.objects

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_cancellation(self, index_store, object_store):
        service = IndexLockService(index_store)
        entered = asyncio.Event()

        async def hold():
            async with service.lock("org", "site"):
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.ensure_future(hold())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert LOCK_KEY not in object_store.objects
