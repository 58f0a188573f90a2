"""
Persistence of the media index.

Each site keeps three JSON objects under `{org}/{repo}/{index_folder}/`:

- index.json       multi-sheet with the `media` and `usage` tables
- index-meta.json  single-row sheet with the build watermark and counters
- index-lock.json  single-row sheet with the advisory build lock

Usage:
    from media_insights.core.storage.index_store import IndexStore

    store = IndexStore(MinIOService())
    entries, usage = await store.load_index("org", "repo")
    await store.save_index("org", "repo", entries, usage)
"""

import json
import logging
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from media_insights.config import settings
from media_insights.core.constants import (
    INDEX_FILE,
    LOCK_FILE,
    META_FILE,
    SHEET_MEDIA,
    SHEET_USAGE,
)
from media_insights.core.indexing.entries import MediaEntry
from media_insights.core.indexing.sheets import (
    create_sheet,
    index_document,
    parse_media_rows,
    parse_usage_rows,
    read_sheet,
)
from media_insights.core.shared.config_loader import config_loader
from media_insights.core.storage.object_store import ObjectStore
from media_insights.models.index_models import IndexCheck, IndexLock, IndexMeta

logger = logging.getLogger("media_insights.storage.index_store")


class IndexStoreError(RuntimeError):
    """Raised when the index cannot be written."""


class IndexStore:
    """Reads and writes the per-site index records."""

    def __init__(self, store: ObjectStore, index_folder: Optional[str] = None):
        self.store = store
        self.index_folder = (
            index_folder
            or config_loader.get("indexer.index_folder")
            or settings.index_folder
        ).strip("/")

    def object_key(self, org: str, repo: str, name: str) -> str:
        return f"{org}/{repo}/{self.index_folder}/{name}"

    async def _read_json(self, key: str) -> Optional[object]:
        raw = await self.store.get_object(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable object {key}: {e}")
            return None

    async def _write_json(self, key: str, payload: object) -> None:
        data = json.dumps(payload, indent=2).encode("utf-8")
        try:
            await self.store.put_object(key, data, content_type="application/json")
        except Exception as e:
            raise IndexStoreError(f"Failed to write {key}: {e}") from e

    # =========================================================================
    # INDEX
    # =========================================================================

    async def load_index(self, org: str, repo: str) -> Tuple[List[MediaEntry], Dict[str, Set[str]]]:
        """
        Load the media and usage tables.

        Returns:
            (entries, usage index); both empty if no index exists
        """
        payload = await self._read_json(self.object_key(org, repo, INDEX_FILE))
        if payload is None:
            return [], {}
        entries = parse_media_rows(read_sheet(payload, SHEET_MEDIA))
        usage = parse_usage_rows(read_sheet(payload, SHEET_USAGE))
        logger.debug(f"Loaded index for {org}/{repo}: {len(entries)} entries, {len(usage)} pages")
        return entries, usage

    async def save_index(
        self,
        org: str,
        repo: str,
        entries: List[MediaEntry],
        usage: Dict[str, Set[str]],
    ) -> None:
        """
        Write the media and usage tables.

        Raises:
            IndexStoreError: If the write fails
        """
        await self._write_json(self.object_key(org, repo, INDEX_FILE), index_document(entries, usage))
        logger.info(f"Saved index for {org}/{repo}: {len(entries)} entries, {len(usage)} pages")

    async def check_index(self, org: str, repo: str) -> IndexCheck:
        stat = await self.store.stat_object(self.object_key(org, repo, INDEX_FILE))
        if stat is None:
            return IndexCheck(exists=False, last_modified=None)
        return IndexCheck(exists=True, last_modified=stat.last_modified)

    # =========================================================================
    # META
    # =========================================================================

    async def load_meta(self, org: str, repo: str) -> Optional[IndexMeta]:
        rows = read_sheet(await self._read_json(self.object_key(org, repo, META_FILE)))
        if not rows:
            return None
        try:
            return IndexMeta.model_validate(rows[0])
        except ValidationError as e:
            logger.warning(f"Ignoring invalid index meta for {org}/{repo}: {e}")
            return None

    async def save_meta(self, org: str, repo: str, meta: IndexMeta) -> None:
        row = meta.model_dump(by_alias=True)
        await self._write_json(self.object_key(org, repo, META_FILE), create_sheet([row]))

    # =========================================================================
    # LOCK
    # =========================================================================

    async def load_lock(self, org: str, repo: str) -> Optional[IndexLock]:
        rows = read_sheet(await self._read_json(self.object_key(org, repo, LOCK_FILE)))
        if not rows:
            return None
        try:
            return IndexLock.model_validate(rows[0])
        except ValidationError as e:
            logger.warning(f"Ignoring invalid lock record for {org}/{repo}: {e}")
            return None

    async def save_lock(self, org: str, repo: str, lock: IndexLock) -> None:
        await self._write_json(self.object_key(org, repo, LOCK_FILE), create_sheet([lock.model_dump()]))

    async def delete_lock(self, org: str, repo: str) -> bool:
        return await self.store.delete_object(self.object_key(org, repo, LOCK_FILE))
