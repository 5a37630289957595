"""Tests for writer options loaded from storage config files."""

import tempfile
from pathlib import Path

import pytest

from mcapstore.core.storage.options import (
    Compression,
    CompressionLevel,
    McapWriterOptions,
    WriteBufferingOptions,
    load_storage_options,
)
from mcapstore.utils.config import Config, ConfigError


class TestStorageOptions:
    """Test McapWriterOptions and WriteBufferingOptions."""
    
    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for tests."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)
    
    def test_defaults(self):
        """Test defaults without a config file."""
        writer_options, buffering, _ = load_storage_options(None)
        
        assert writer_options == McapWriterOptions()
        assert writer_options.compression == Compression.ZSTD
        assert writer_options.non_default_fields() == []
        assert buffering == WriteBufferingOptions()
        assert buffering.buffer_capacity == 1024
    
    def test_from_yaml(self, temp_dir):
        """Test camelCase keys are mapped onto options."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text(
            "noChunking: true\n"
            "chunkSize: 4096\n"
            "compression: Lz4\n"
            "compressionLevel: Fastest\n"
            "noMessageIndex: true\n"
            "bufferCapacity: 65536\n"
            "syncAfterWrite: true\n"
        )
        
        writer_options, buffering, _ = load_storage_options(str(config_path))
        
        assert writer_options.no_chunking
        assert writer_options.chunk_size == 4096
        assert writer_options.compression == Compression.LZ4
        assert writer_options.compression_level == CompressionLevel.FASTEST
        assert writer_options.no_message_index
        assert buffering.buffer_capacity == 65536
        assert buffering.sync_after_write
        assert not buffering.buffer_entire_batch
        assert set(writer_options.non_default_fields()) == {
            "no_chunking",
            "chunk_size",
            "compression",
            "compression_level",
            "no_message_index",
        }
    
    def test_invalid_compression(self, temp_dir):
        """Test unknown enum names are rejected."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("compression: Brotli\n")
        
        with pytest.raises(ConfigError, match="compression"):
            McapWriterOptions.from_config(Config(str(config_path)))
    
    def test_invalid_bool(self, temp_dir):
        """Test non-boolean flags are rejected."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("syncAfterWrite: sometimes\n")
        
        with pytest.raises(ConfigError, match="syncAfterWrite"):
            WriteBufferingOptions.from_config(Config(str(config_path)))
    
    def test_invalid_capacity(self, temp_dir):
        """Test negative buffer capacities are rejected."""
        config_path = temp_dir / "storage.yaml"
        config_path.write_text("bufferCapacity: -5\n")
        
        with pytest.raises(ConfigError, match="bufferCapacity"):
            WriteBufferingOptions.from_config(Config(str(config_path)))
