"""
Progress and progressive-preview channel for index builds.

Builds report coarse progress at fixed milestones and, during full builds,
partial snapshots of the entries found so far so a UI can render before the
build finishes. Snapshots are deduplicated by dedupe key (newest timestamp
wins) and capped at a display limit; a later snapshot supersedes an earlier
one per key. Callback failures are logged and never affect the build.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from media_insights.core.indexing.entries import MediaEntry
from media_insights.core.indexing.media_types import get_dedupe_key

logger = logging.getLogger("media_insights.indexing.progress")

ProgressEvent = Dict[str, Any]
ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]
SnapshotCallback = Callable[[List[MediaEntry]], Union[None, Awaitable[None]]]

STAGE_STARTING = "starting"
STAGE_LOADING = "loading"
STAGE_FETCHING = "fetching"
STAGE_PROCESSING = "processing"
STAGE_SAVING = "saving"
STAGE_COMPLETE = "complete"


def snapshot_key(entry: MediaEntry) -> str:
    return get_dedupe_key(entry.url) if entry.url else entry.hash


def dedupe_newest(entries: Iterable[MediaEntry]) -> List[MediaEntry]:
    """One entry per dedupe key, keeping the newest timestamp."""
    by_key: Dict[str, MediaEntry] = {}
    for entry in entries:
        key = snapshot_key(entry)
        current = by_key.get(key)
        if current is None or entry.timestamp > current.timestamp:
            by_key[key] = entry
    return list(by_key.values())


class ProgressChannel:
    """Fan-out of build progress to optional callbacks."""

    def __init__(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_progressive_data: Optional[SnapshotCallback] = None,
        display_cap: int = 3000,
    ):
        self.on_progress = on_progress
        self.on_progressive_data = on_progressive_data
        self.display_cap = display_cap
        self._snapshot: Dict[str, MediaEntry] = {}

    @property
    def wants_snapshots(self) -> bool:
        return self.on_progressive_data is not None

    async def _call(self, callback: Callable, payload: Any) -> None:
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def emit(self, stage: str, message: str, percent: Optional[int] = None) -> None:
        logger.debug(f"[{stage}] {message}")
        if self.on_progress is None:
            return
        event: ProgressEvent = {"stage": stage, "message": message}
        if percent is not None:
            event["percent"] = percent
        await self._call(self.on_progress, event)

    def _merge(self, entries: Iterable[MediaEntry]) -> None:
        for entry in entries:
            key = snapshot_key(entry)
            current = self._snapshot.get(key)
            if current is None:
                if len(self._snapshot) >= self.display_cap:
                    continue
                self._snapshot[key] = entry
            elif entry.timestamp >= current.timestamp:
                self._snapshot[key] = entry

    async def emit_snapshot(self, entries: Iterable[MediaEntry]) -> None:
        """Merge entries into the running snapshot and publish it."""
        if self.on_progressive_data is None:
            return
        self._merge(entries)
        await self._call(self.on_progressive_data, list(self._snapshot.values()))

    def snapshot(self) -> List[MediaEntry]:
        return list(self._snapshot.values())
