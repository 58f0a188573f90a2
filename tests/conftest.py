import os
import tempfile
from pathlib import Path

# Keep tests independent of any config.yml or .env on the machine running them.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="media_insights_pytest_"))
os.environ["MEDIA_INSIGHTS_CONFIG"] = str(_SESSION_DIR / "missing-config.yml")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("SOURCE_API_TOKEN", "test-source-token")
os.environ.setdefault("MINIO_ACCESS_KEY", "test-access")
os.environ.setdefault("MINIO_SECRET_KEY", "test-secret")

from typing import Any, Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402

from media_insights.core.storage.index_store import IndexStore  # noqa: E402
from media_insights.core.storage.object_store import ObjectStat, ObjectStore  # noqa: E402
from media_insights.utils.time_utils import now_ms  # noqa: E402


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store recording a modification time per object."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, int]] = {}
        self.closed = False

    async def get_object(self, key: str) -> Optional[bytes]:
        stored = self.objects.get(key)
        return stored[0] if stored else None

    async def put_object(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        self.objects[key] = (data, now_ms())

    async def delete_object(self, key: str) -> bool:
        self.objects.pop(key, None)
        return True

    async def stat_object(self, key: str) -> Optional[ObjectStat]:
        stored = self.objects.get(key)
        if stored is None:
            return None
        return ObjectStat(key=key, size=len(stored[0]), last_modified=stored[1])

    async def aclose(self) -> None:
        self.closed = True


class FakeLogClient:
    """Serves canned log entries, honouring `since` like the real endpoint."""

    def __init__(self, logs: Optional[Dict[str, List[Dict[str, Any]]]] = None, page_size: int = 2):
        self.logs = logs or {"log": [], "medialog": []}
        self.page_size = page_size
        self.calls: List[Tuple[str, Optional[int]]] = []
        self.closed = False

    async def stream_log(self, log_name, org, repo, ref, since, on_page, page_size=None):
        self.calls.append((log_name, since))
        entries = [
            e for e in self.logs.get(log_name, [])
            if not since or int(e.get("timestamp") or 0) >= since
        ]
        for start in range(0, len(entries), self.page_size):
            result = on_page(entries[start:start + self.page_size])
            if result is not None:
                await result
        return len(entries)

    async def aclose(self):
        self.closed = True


class FakeSourceClient:
    """Returns markdown from a dict; missing pages fail like an HTTP 404."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, default: Optional[str] = ""):
        self.pages = pages or {}
        self.default = default
        self.fetched: List[str] = []
        self.closed = False

    async def fetch_markdown(self, doc, org, repo):
        self.fetched.append(doc)
        return self.pages.get(doc, self.default)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def index_store(object_store):
    return IndexStore(object_store, index_folder=".da/media-insights")


@pytest.fixture
def fake_log_client():
    return FakeLogClient()


@pytest.fixture
def fake_source_client():
    return FakeSourceClient()


def pytest_sessionfinish(session, exitstatus):
    """Remove the session temp directory."""
    import shutil
    shutil.rmtree(_SESSION_DIR, ignore_errors=True)
