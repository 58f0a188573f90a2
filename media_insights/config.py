# ============================================================================
# Media Insights - Application Configuration
# ============================================================================
"""
Application configuration module using Pydantic Settings.

This module defines all configuration parameters for the indexer, including:
- Admin API (event logs) and source API (page markdown) endpoints
- Object storage (MinIO) for the persisted index
- Index build tuning (page size, concurrency, tolerances)
- Coordinator polling intervals

Environment Variables:
    See .env.example for a complete list of available settings.

Usage:
    from media_insights.config import settings
    page_size = settings.log_page_size
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # =========================================================================
    # GENERAL
    # =========================================================================
    app_name: str = "Media Insights"
    debug: bool = Field(default=False, description="Enable verbose logging")
    perf_logging: bool = Field(default=False, description="Log a timing summary after each build")

    # =========================================================================
    # ADMIN API (EVENT LOGS)
    # =========================================================================
    admin_api_base_url: str = Field(default="https://admin.hlx.page", description="Base URL of the log endpoint")
    admin_api_token: Optional[str] = Field(default=None, description="Bearer token for the log endpoint")
    log_page_size: int = Field(default=1000, description="Entries requested per log page")
    log_page_delay: float = Field(default=0.1, description="Delay (s) between log page requests")

    # =========================================================================
    # SOURCE API (PAGE MARKDOWN)
    # =========================================================================
    source_api_base_url: str = Field(default="https://admin.da.live", description="Base URL of the page source endpoint")
    source_api_token: Optional[str] = Field(default=None, description="Bearer token for the page source endpoint")

    # =========================================================================
    # HTTP
    # =========================================================================
    http_timeout: float = Field(default=30.0, description="Timeout (s) for outbound requests")
    http_max_retries: int = Field(default=2, description="Retry count for transport errors")
    http_verify_ssl: bool = Field(default=True, description="Verify SSL for outbound requests")

    # =========================================================================
    # OBJECT STORAGE
    # =========================================================================
    minio_endpoint: str = Field(default="localhost:9000", description="MinIO endpoint (host:port)")
    minio_access_key: str = Field(default="admin", description="MinIO access key")
    minio_secret_key: str = Field(default="changeme", description="MinIO secret key")
    minio_secure: bool = Field(default=False, description="Use HTTPS for MinIO")
    minio_bucket: str = Field(default="media-insights", description="Bucket holding the persisted index")
    index_folder: str = Field(default=".da/media-insights", description="Per-site folder of the index files")

    # =========================================================================
    # INDEX BUILD
    # =========================================================================
    default_ref: str = Field(default="main", description="Default branch ref")
    max_concurrent_fetches: int = Field(default=10, description="Parallel page markdown fetches")
    alignment_tolerance_ms: int = Field(default=120_000, description="Max meta/index skew for incremental builds")
    lock_max_age_ms: int = Field(default=30 * 60 * 1000, description="Age after which a build lock is stale")
    progressive_display_cap: int = Field(default=3000, description="Max distinct items in a progressive snapshot")

    # =========================================================================
    # COORDINATOR
    # =========================================================================
    polling_interval: float = Field(default=60.0, description="Seconds between index change checks")
    lock_check_interval: float = Field(default=5.0, description="Seconds between checks while another build runs")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
