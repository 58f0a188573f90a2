"""
Configuration loader service for YAML-based configuration.

Loads and caches configuration from config.yml, providing type-safe access
to the admin API, source API, storage and indexer sections. When config.yml
is absent every getter returns None and callers fall back to environment
settings.

Usage:
    from media_insights.core.shared.config_loader import config_loader

    minio_config = config_loader.get_minio_config()
    page_size = config_loader.get("admin_api.page_size", 1000)
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from media_insights.models.config_models import (
    AdminApiConfig,
    AppConfig,
    MinIOConfig,
    SourceApiConfig,
)

logger = logging.getLogger("media_insights.config_loader")


class ConfigLoader:
    """
    Configuration loader and cache manager.

    Resolves config.yml from MEDIA_INSIGHTS_CONFIG, the working directory or
    the project root, validates it against the Pydantic models and caches
    the result.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration loader.

        Args:
            config_path: Path to config.yml (defaults to the first existing candidate)
        """
        if config_path is None:
            project_dir = Path(__file__).resolve().parents[3]
            candidate_paths = [
                Path(os.getenv("MEDIA_INSIGHTS_CONFIG", "")) if os.getenv("MEDIA_INSIGHTS_CONFIG") else None,
                Path.cwd() / "config.yml",
                project_dir / "config.yml",
            ]
            candidates = [c for c in candidate_paths if c is not None]
            config_path = str(candidates[0])
            for candidate in candidates:
                if candidate.exists():
                    config_path = str(candidate)
                    break

        self.config_path = config_path
        self._config: Optional[AppConfig] = None
        self._loaded = False
        self._missing = False

    def load(self) -> AppConfig:
        """
        Load and parse configuration file.

        Returns:
            Validated AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        logger.info(f"Loading configuration from: {self.config_path}")

        try:
            self._config = AppConfig.from_yaml(self.config_path)
            self._loaded = True
            self._missing = False
            logger.info("Configuration loaded successfully")
            return self._config
        except FileNotFoundError:
            logger.debug(f"Configuration file not found: {self.config_path}")
            self._loaded = False
            self._missing = True
            raise
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            self._loaded = False
            raise ValueError(f"Configuration error: {e}") from e

    def reload(self) -> AppConfig:
        """Reload configuration from file."""
        logger.info("Reloading configuration")
        self._config = None
        self._loaded = False
        self._missing = False
        return self.load()

    def is_loaded(self) -> bool:
        return self._loaded and self._config is not None

    def get_config(self) -> Optional[AppConfig]:
        """
        Get the full configuration object.

        Returns:
            AppConfig instance or None if config.yml is missing or invalid
        """
        if self._missing:
            return None
        if not self.is_loaded():
            try:
                return self.load()
            except FileNotFoundError:
                return None
            except ValueError as e:
                logger.warning(f"Ignoring invalid config.yml, using environment settings: {e}")
                return None
        return self._config

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Examples:
            >>> config_loader.get("indexer.polling_interval", 60)
            60.0
        """
        config = self.get_config()
        if config is None:
            return default

        obj = config
        for key in key_path.split('.'):
            if hasattr(obj, key):
                obj = getattr(obj, key)
            elif isinstance(obj, dict) and key in obj:
                obj = obj[key]
            else:
                return default

        return default if obj is None else obj

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty if valid)."""
        errors = []
        try:
            config = self.load()
        except FileNotFoundError:
            return errors
        except ValueError as e:
            errors.append(str(e))
            return errors

        if config.minio is None:
            logger.warning("MinIO configuration not found (using environment settings)")
        if config.admin_api is not None and not config.admin_api.token:
            errors.append("admin_api.token is empty")
        return errors

    # -------------------------------------------------------------------------
    # Typed configuration getters
    # -------------------------------------------------------------------------

    def get_admin_api_config(self) -> Optional[AdminApiConfig]:
        config = self.get_config()
        return config.admin_api if config else None

    def get_source_api_config(self) -> Optional[SourceApiConfig]:
        config = self.get_config()
        return config.source_api if config else None

    def get_minio_config(self) -> Optional[MinIOConfig]:
        """
        Get typed MinIO configuration.

        Returns:
            MinIOConfig instance or None if not configured
        """
        config = self.get_config()
        return config.minio if config else None


# Global configuration loader instance
config_loader = ConfigLoader()
