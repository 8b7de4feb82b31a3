"""
Unit tests for server configuration.
"""

import argparse
import pytest

from fusion.server.__main__ import build_config
from fusion.server.config import ServerConfig, load_config


class TestServerConfig:
    """ServerConfig tests."""

    def test_defaults(self):
        """Test default settings."""
        config = ServerConfig()

        assert config.path == "/fusion"
        assert config.db == "fusion"
        assert config.dev_mode is False
        assert config.auto_create_index is False

    def test_dev_mode_enables_auto_creation(self):
        """Test development mode implies automatic creation."""
        config = ServerConfig(dev_mode=True)

        assert config.auto_create_collection is True
        assert config.auto_create_index is True

    def test_path_normalized(self):
        """Test the endpoint path gets a leading slash."""
        assert ServerConfig(path="ws").path == "/ws"

    def test_from_env(self, monkeypatch):
        """Test loading from environment variables."""
        monkeypatch.setenv("FUSION_PORT", "9000")
        monkeypatch.setenv("FUSION_DEV_MODE", "true")
        monkeypatch.setenv("FUSION_CORS_ORIGINS", "http://a, http://b")
        monkeypatch.setenv("FUSION_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert config.port == 9000
        assert config.dev_mode is True
        assert config.auto_create_index is True
        assert config.cors_origins == ["http://a", "http://b"]
        assert config.log_level == "DEBUG"

    def test_to_dict_hides_key(self):
        """Test the API key is masked."""
        assert ServerConfig(api_key="secret").to_dict()["api_key"] == "***"
        assert ServerConfig().to_dict()["api_key"] is None


class TestLoadConfig:
    """YAML configuration tests."""

    def test_load(self, tmp_path, monkeypatch):
        """Test reading a configuration file."""
        monkeypatch.delenv("FUSION_PORT", raising=False)
        path = tmp_path / "fusion.yaml"
        path.write_text("port: 8300\ndb: app\nindex_build_delay: 0.5\n")

        config = load_config(path)

        assert config.port == 8300
        assert config.db == "app"
        assert config.index_build_delay == 0.5

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """Test environment variables win over the file."""
        monkeypatch.setenv("FUSION_PORT", "8400")
        path = tmp_path / "fusion.yaml"
        path.write_text("port: 8300\n")

        assert load_config(path).port == 8400

    def test_unknown_setting(self, tmp_path):
        """Test rejection of unknown settings."""
        path = tmp_path / "fusion.yaml"
        path.write_text("colour: blue\n")

        with pytest.raises(ValueError, match="colour"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        """Test rejection of non-mapping files."""
        path = tmp_path / "fusion.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_config(path)


class TestCommandLine:
    """Command-line merging tests."""

    def make_args(self, **overrides):
        values = {
            "config": None, "host": None, "port": None, "path": None,
            "db": None, "dev_mode": False, "snapshot_path": None,
            "index_build_delay": None, "api_key": None, "log_level": None,
        }
        values.update(overrides)
        return argparse.Namespace(**values)

    def test_flags_override(self, monkeypatch):
        """Test flags win over environment settings."""
        monkeypatch.setenv("FUSION_PORT", "9000")

        config = build_config(self.make_args(port=9100, dev_mode=True))

        assert config.port == 9100
        assert config.dev_mode is True
        assert config.auto_create_index is True

    def test_unset_flags_keep_settings(self, monkeypatch):
        """Test absent flags leave settings alone."""
        monkeypatch.setenv("FUSION_DB", "other")

        config = build_config(self.make_args())

        assert config.db == "other"
        assert config.dev_mode is False
