"""Object storage backends and the per-site index store."""

from .index_store import IndexStore, IndexStoreError
from .minio_service import MinIOService
from .object_store import ObjectStat, ObjectStore

__all__ = [
    "IndexStore",
    "IndexStoreError",
    "MinIOService",
    "ObjectStat",
    "ObjectStore",
]
