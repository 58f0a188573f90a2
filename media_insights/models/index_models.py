"""
Pydantic models for the persisted index records.

Persisted records use the camelCase field names of the stored JSON; Python
code uses snake_case attributes.

Usage:
    from media_insights.models.index_models import IndexMeta
    meta = IndexMeta.model_validate(row)
    row = meta.model_dump(by_alias=True)
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from media_insights.core.constants import REFRESHED_BY


class IndexMeta(BaseModel):
    """Metadata written at the end of every successful build."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    last_fetch_time: Optional[int] = Field(default=None, alias="lastFetchTime")
    entries_count: int = Field(default=0, alias="entriesCount")
    media_count: int = Field(default=0, alias="mediaCount")
    usage_count: int = Field(default=0, alias="usageCount")
    last_refresh_by: str = Field(default=REFRESHED_BY, alias="lastRefreshBy")
    last_build_mode: Optional[Literal["full", "incremental"]] = Field(default=None, alias="lastBuildMode")


class IndexLock(BaseModel):
    """Advisory build lock record."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: int
    locked: bool = True


class IndexStatus(BaseModel):
    """Summary of a site's index for status displays."""
    model_config = ConfigDict(populate_by_name=True)

    last_refresh: Optional[int] = Field(default=None, alias="lastRefresh")
    entries_count: int = Field(default=0, alias="entriesCount")
    last_build_mode: Optional[str] = Field(default=None, alias="lastBuildMode")
    index_exists: bool = Field(default=False, alias="indexExists")
    index_last_modified: Optional[int] = Field(default=None, alias="indexLastModified")


class IndexCheck(BaseModel):
    """Existence and modification time of the persisted index."""
    exists: bool = False
    last_modified: Optional[int] = None


class ReindexEligibility(BaseModel):
    """Outcome of the full vs. incremental decision."""
    should_reindex: bool
    reason: Optional[str] = None

