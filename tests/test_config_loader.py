"""
Tests for configuration loader service.

Tests YAML configuration loading, validation, and environment variable resolution.
"""

from unittest.mock import patch

import pytest

from media_insights.core.shared.config_loader import ConfigLoader
from media_insights.models.config_models import AppConfig


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    def test_load_valid_config(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("""
version: "1.0"
admin_api:
  base_url: https://admin.example.com
  token: test-token
  page_size: 500
minio:
  endpoint: minio:9000
  access_key: admin
  secret_key: changeme
indexer:
  polling_interval: 30
""")

        loader = ConfigLoader(str(config_file))
        config = loader.load()

        assert config.admin_api.page_size == 500
        assert config.minio.bucket == "media-insights"
        assert config.indexer.polling_interval == 30
        assert config.indexer.alignment_tolerance_ms == 120000
        assert loader.get("admin_api.token") == "test-token"
        assert loader.get("source_api.base_url", "fallback") == "fallback"
        assert loader.get_minio_config().endpoint == "minio:9000"

    def test_load_missing_file(self, tmp_path):
        loader = ConfigLoader(str(tmp_path / "nonexistent.yml"))

        with pytest.raises(FileNotFoundError):
            loader.load()
        assert loader.get_config() is None
        assert loader.get("indexer.polling_interval", 60) == 60

    def test_missing_file_is_only_read_once(self, tmp_path):
        loader = ConfigLoader(str(tmp_path / "config.yml"))

        with patch.object(AppConfig, "from_yaml", side_effect=FileNotFoundError) as from_yaml:
            assert loader.get("admin_api.page_size", 1000) == 1000
            assert loader.get("indexer.polling_interval", 60) == 60
            assert loader.get_minio_config() is None

        from_yaml.assert_called_once()

    def test_reload_picks_up_new_file(self, tmp_path):
        config_file = tmp_path / "config.yml"
        loader = ConfigLoader(str(config_file))
        assert loader.get_config() is None

        config_file.write_text("indexer:\n  polling_interval: 15\n")

        assert loader.reload().indexer.polling_interval == 15
        assert loader.get("indexer.polling_interval") == 15

    def test_env_var_resolution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_ADMIN_TOKEN", "secret-key-123")
        config_file = tmp_path / "config.yml"
        config_file.write_text("""
admin_api:
  token: ${TEST_ADMIN_TOKEN}
source_api:
  base_url: ${TEST_SOURCE_URL:-https://source.example.com}
""")

        config = ConfigLoader(str(config_file)).load()

        assert config.admin_api.token == "secret-key-123"
        assert config.source_api.base_url == "https://source.example.com"

    def test_missing_env_var_is_an_error(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("admin_api:\n  token: ${MEDIA_INSIGHTS_UNSET_VAR}\n")

        loader = ConfigLoader(str(config_file))

        with pytest.raises(ValueError):
            loader.load()
        assert loader.get_config() is None

    def test_unknown_keys_rejected(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("indexer:\n  unknown_option: 1\n")

        with pytest.raises(ValueError):
            ConfigLoader(str(config_file)).load()

    def test_minio_endpoint_without_scheme(self):
        with pytest.raises(ValueError):
            AppConfig(minio={"endpoint": "http://minio:9000", "access_key": "a", "secret_key": "b"})

    def test_validate_reports_empty_token(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("admin_api:\n  base_url: https://admin.example.com\n")

        errors = ConfigLoader(str(config_file)).validate()

        assert errors == ["admin_api.token is empty"]

    def test_env_config_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "custom.yml"
        config_file.write_text("version: '2.0'\n")
        monkeypatch.setenv("MEDIA_INSIGHTS_CONFIG", str(config_file))

        loader = ConfigLoader()

        assert loader.config_path == str(config_file)
        assert loader.load().version == "2.0"
