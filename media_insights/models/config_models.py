"""
Pydantic models for YAML configuration validation.

This module defines the schema for config.yml, providing type-safe configuration
with validation and sensible defaults. Every section is optional; values not
set in config.yml come from environment settings.

Usage:
    from media_insights.models.config_models import AppConfig
    config = AppConfig.from_yaml("config.yml")
"""

import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AdminApiConfig(BaseModel):
    """
    Admin API configuration.

    Serves the preview audit log and the media-operations log.
    """
    model_config = ConfigDict(extra='forbid')

    base_url: str = Field(
        default="https://admin.hlx.page",
        description="Base URL of the log endpoint"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token"
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        description="Entries requested per log page"
    )
    page_delay: float = Field(
        default=0.1,
        ge=0,
        description="Delay (s) between page requests"
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries for transport errors"
    )


class SourceApiConfig(BaseModel):
    """Page source (markdown) endpoint configuration."""
    model_config = ConfigDict(extra='forbid')

    base_url: str = Field(
        default="https://admin.da.live",
        description="Base URL of the source endpoint"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token"
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds"
    )
    max_concurrent_fetches: int = Field(
        default=10,
        ge=1,
        description="Parallel page markdown fetches"
    )


class MinIOConfig(BaseModel):
    """
    MinIO object storage configuration.

    Holds the persisted index, its metadata and the build lock.
    """
    model_config = ConfigDict(extra='forbid')

    endpoint: str = Field(
        description="MinIO endpoint (host:port)"
    )
    access_key: str = Field(
        description="Access key"
    )
    secret_key: str = Field(
        description="Secret key"
    )
    secure: bool = Field(
        default=False,
        description="Use HTTPS"
    )
    bucket: str = Field(
        default="media-insights",
        description="Bucket holding the persisted index"
    )

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        """Endpoint is host:port without a scheme."""
        if v.startswith("http://") or v.startswith("https://"):
            raise ValueError("MinIO endpoint must not include a scheme (use 'secure' instead)")
        return v


class IndexerConfig(BaseModel):
    """Index build and coordinator tuning."""
    model_config = ConfigDict(extra='forbid')

    index_folder: str = Field(
        default=".da/media-insights",
        description="Per-site folder of the index files"
    )
    default_ref: str = Field(
        default="main",
        description="Default branch ref"
    )
    alignment_tolerance_ms: int = Field(
        default=120_000,
        ge=0,
        description="Max meta/index skew for incremental builds"
    )
    lock_max_age_ms: int = Field(
        default=30 * 60 * 1000,
        gt=0,
        description="Age after which a build lock is stale"
    )
    progressive_display_cap: int = Field(
        default=3000,
        ge=1,
        description="Max distinct items in a progressive snapshot"
    )
    polling_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between index change checks"
    )
    lock_check_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between checks while another build runs"
    )
    perf_logging: bool = Field(
        default=False,
        description="Log a timing summary after each build"
    )


class AppConfig(BaseModel):
    """
    Root configuration model for config.yml.

    Example config.yml:
        version: "1.0"
        admin_api:
          token: ${ADMIN_API_TOKEN}
        minio:
          endpoint: minio:9000
          access_key: ${MINIO_ACCESS_KEY}
          secret_key: ${MINIO_SECRET_KEY}
    """
    model_config = ConfigDict(extra='forbid')

    version: str = Field(
        default="1.0",
        description="Configuration schema version"
    )
    admin_api: Optional[AdminApiConfig] = Field(
        default=None,
        description="Admin API (event logs) configuration"
    )
    source_api: Optional[SourceApiConfig] = Field(
        default=None,
        description="Page source configuration"
    )
    minio: Optional[MinIOConfig] = Field(
        default=None,
        description="Object storage configuration"
    )
    indexer: IndexerConfig = Field(
        default_factory=IndexerConfig,
        description="Index build tuning"
    )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "AppConfig":
        """
        Load and parse configuration from YAML file.

        Args:
            yaml_path: Path to config.yml file

        Returns:
            Validated AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml

        if not os.path.exists(yaml_path):
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        # Resolve environment variable references
        resolved_config = cls._resolve_env_vars(raw_config)

        return cls(**resolved_config)

    @classmethod
    def _resolve_env_vars(cls, obj: Any) -> Any:
        """
        Recursively resolve ${ENV_VAR} references in configuration.

        A reference may carry a default: ${ENV_VAR:-fallback}.
        """
        if isinstance(obj, dict):
            return {k: cls._resolve_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [cls._resolve_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            if obj.startswith("${") and obj.endswith("}"):
                var_name, _, default = obj[2:-1].partition(":-")
                value = os.getenv(var_name)
                if value is None:
                    if default:
                        return default
                    raise ValueError(f"Environment variable not set: {var_name}")
                return value
            return obj
        else:
            return obj
