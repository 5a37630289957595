"""Tests for logging configuration."""

import logging
import tempfile
from pathlib import Path

import pytest
import structlog

from mcapstore.utils.config import Config
from mcapstore.utils.logging import (
    add_app_context,
    configure_logging,
    configure_logging_from_config,
    get_logger,
)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo global logging changes after each test."""
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    structlog.reset_defaults()


class TestLogging:
    """Test logging helpers."""
    
    def test_configure_sets_level(self):
        """Test the root logger level follows the requested level."""
        configure_logging(log_level="warning", log_format="console")
        
        assert logging.getLogger().level == logging.WARNING
    
    def test_unknown_level(self):
        """Test an unknown level is rejected."""
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging(log_level="LOUD")
    
    def test_unknown_format(self):
        """Test an unknown format is rejected."""
        with pytest.raises(ValueError, match="xml"):
            configure_logging(log_format="xml")
    
    def test_configure_from_config(self, monkeypatch):
        """Test the logging section and env override are applied."""
        monkeypatch.setenv("MCAPSTORE_LOG_LEVEL", "DEBUG")
        
        configure_logging_from_config(Config())
        
        assert logging.getLogger().level == logging.DEBUG
    
    def test_configure_from_file(self, monkeypatch):
        """Test the logging section of a YAML file is applied."""
        monkeypatch.delenv("MCAPSTORE_LOG_LEVEL", raising=False)
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "storage.yaml"
            config_path.write_text("logging:\n  level: ERROR\n  format: console\n")
            
            configure_logging_from_config(Config(str(config_path)))
        
        assert logging.getLogger().level == logging.ERROR
    
    def test_app_context(self):
        """Test events are tagged with the library name."""
        event = add_app_context(None, "info", {"event": "Opened storage"})
        
        assert event["app"] == "mcapstore"
    
    def test_bound_context(self):
        """Test context passed to get_logger is attached to events."""
        with structlog.testing.capture_logs() as captured:
            get_logger("mcapstore.test", path="bag.mcap").info("Opened storage")
        
        assert captured == [{"path": "bag.mcap", "event": "Opened storage", "log_level": "info"}]
