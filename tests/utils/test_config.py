"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from mcapstore.utils.config import DEFAULT_CONFIG, Config, ConfigError


class TestConfig:
    """Test Config."""
    
    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for tests."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)
    
    def test_defaults(self, monkeypatch):
        """Test built-in defaults are present."""
        monkeypatch.delenv("MCAPSTORE_LOG_LEVEL", raising=False)
        config = Config()
        
        assert config.get("chunkSize") == 786432
        assert config.get("logging.level") == "INFO"
        assert config.get("missing.key", "fallback") == "fallback"
    
    def test_file_overrides_defaults(self, temp_dir):
        """Test YAML values are deep-merged over defaults."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("chunkSize: 1024\nlogging:\n  format: console\n")
        
        config = Config(str(config_path))
        
        assert config.get("chunkSize") == 1024
        assert config.get("logging.format") == "console"
        assert config.get("logging.level") is not None
    
    def test_empty_file(self, temp_dir):
        """Test an empty YAML document leaves the defaults."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("")
        
        assert Config(str(config_path)).get("compression") == "Zstd"
    
    def test_non_mapping_rejected(self, temp_dir):
        """Test a YAML list is not a valid storage config."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("- a\n- b\n")
        
        with pytest.raises(ConfigError):
            Config(str(config_path))
    
    def test_set_does_not_touch_defaults(self):
        """Test set() only changes the instance."""
        config = Config()
        config.set("logging.level", "DEBUG")
        
        assert config.get("logging.level") == "DEBUG"
        assert DEFAULT_CONFIG["logging"]["level"] == "INFO"
    
    def test_env_overrides(self, monkeypatch):
        """Test environment variables override config values."""
        monkeypatch.setenv("MCAPSTORE_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("MCAPSTORE_DEFINITION_PATH", "/opt/a:/opt/b")
        
        config = Config()
        
        assert config.get("logging.level") == "WARNING"
        assert config.get("definitionSearchPaths") == [Path("/opt/a"), Path("/opt/b")]
    
    def test_invalid_yaml(self, temp_dir):
        """Test a syntactically broken file raises ConfigError."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("chunkSize: [1, 2\n")
        
        with pytest.raises(ConfigError, match="not valid YAML"):
            Config(str(config_path))
    
    def test_to_dict_is_a_copy(self):
        """Test mutating the exported dict leaves the config untouched."""
        config = Config()
        exported = config.to_dict()
        exported["logging"]["format"] = "console"
        
        assert config.get("logging.format") == "json"
    
    def test_source(self, temp_dir):
        """Test the loaded file path is recorded."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("chunkSize: 1\n")
        
        assert Config(str(config_path)).source == str(config_path)
        assert Config().source is None
