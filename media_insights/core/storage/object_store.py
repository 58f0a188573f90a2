"""
Object storage interface used by the index store.

The persisted index, its metadata and the build lock are plain JSON objects
under a per-site prefix; any backend offering get/put/delete/stat can hold
them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ObjectStat:
    """Metadata of a stored object."""
    key: str
    size: int
    last_modified: Optional[int]  # epoch ms, None when the backend does not report it


class ObjectStore(ABC):
    """Async key/value object storage."""

    @abstractmethod
    async def get_object(self, key: str) -> Optional[bytes]:
        """Return the object's bytes, or None if it does not exist."""

    @abstractmethod
    async def put_object(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        """Create or replace an object."""

    @abstractmethod
    async def delete_object(self, key: str) -> bool:
        """Delete an object. Returns True once the object is gone."""

    @abstractmethod
    async def stat_object(self, key: str) -> Optional[ObjectStat]:
        """Return object metadata, or None if it does not exist."""

    async def aclose(self) -> None:
        """Release backend resources."""
