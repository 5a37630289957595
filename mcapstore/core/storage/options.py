"""
Writer options read from a storage configuration file.

Keys follow the camelCase names used by existing MCAP storage config files,
so a file written for another MCAP recorder can be reused unchanged.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

from mcapstore.utils.config import Config, ConfigError


class Compression(Enum):
    """Chunk compression algorithms."""

    NONE = "None"
    LZ4 = "Lz4"
    ZSTD = "Zstd"


class CompressionLevel(Enum):
    """Compression effort presets."""

    FASTEST = "Fastest"
    FAST = "Fast"
    DEFAULT = "Default"
    SLOW = "Slow"
    SLOWEST = "Slowest"


def _enum_option(config: Config, key: str, enum_type):
    raw = config.get(key)
    try:
        return enum_type(raw)
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise ConfigError(f"Invalid value {raw!r} for {key}, expected one of: {choices}")


def _bool_option(config: Config, key: str) -> bool:
    raw = config.get(key)
    if not isinstance(raw, bool):
        raise ConfigError(f"Invalid value {raw!r} for {key}, expected a boolean")
    return raw


def _int_option(config: Config, key: str) -> int:
    raw = config.get(key)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ConfigError(f"Invalid value {raw!r} for {key}, expected a non-negative integer")
    return raw


@dataclass
class McapWriterOptions:
    """
    Container layout options.

    Attributes:
        no_chunk_crc: Skip CRCs over chunk contents
        no_attachment_crc: Skip CRCs over attachments
        enable_data_crc: Compute a CRC over the whole data section
        no_chunking: Write records directly instead of in chunks
        no_message_index: Omit per-chunk message indexes
        no_summary: Omit the summary section
        chunk_size: Target uncompressed chunk size in bytes
        compression: Chunk compression algorithm
        compression_level: Compression effort
        force_compression: Keep compressed chunks even when larger
        no_repeated_schemas: Do not repeat schemas in the summary
        no_repeated_channels: Do not repeat channels in the summary
        no_attachment_index: Omit attachment indexes
        no_metadata_index: Omit metadata indexes
        no_chunk_index: Omit chunk indexes
        no_statistics: Omit the statistics record
        no_summary_offsets: Omit summary offset records
    """
    no_chunk_crc: bool = False
    no_attachment_crc: bool = False
    enable_data_crc: bool = False
    no_chunking: bool = False
    no_message_index: bool = False
    no_summary: bool = False
    chunk_size: int = 786432
    compression: Compression = Compression.ZSTD
    compression_level: CompressionLevel = CompressionLevel.DEFAULT
    force_compression: bool = False
    no_repeated_schemas: bool = False
    no_repeated_channels: bool = False
    no_attachment_index: bool = False
    no_metadata_index: bool = False
    no_chunk_index: bool = False
    no_statistics: bool = False
    no_summary_offsets: bool = False

    @staticmethod
    def from_config(config: Config) -> "McapWriterOptions":
        """
        Build writer options from a configuration.

        Raises:
            ConfigError: If a value has the wrong type or an unknown enum name
        """
        return McapWriterOptions(
            no_chunk_crc=_bool_option(config, "noChunkCRC"),
            no_attachment_crc=_bool_option(config, "noAttachmentCRC"),
            enable_data_crc=_bool_option(config, "enableDataCRC"),
            no_chunking=_bool_option(config, "noChunking"),
            no_message_index=_bool_option(config, "noMessageIndex"),
            no_summary=_bool_option(config, "noSummary"),
            chunk_size=_int_option(config, "chunkSize"),
            compression=_enum_option(config, "compression", Compression),
            compression_level=_enum_option(config, "compressionLevel", CompressionLevel),
            force_compression=_bool_option(config, "forceCompression"),
            no_repeated_schemas=_bool_option(config, "noRepeatedSchemas"),
            no_repeated_channels=_bool_option(config, "noRepeatedChannels"),
            no_attachment_index=_bool_option(config, "noAttachmentIndex"),
            no_metadata_index=_bool_option(config, "noMetadataIndex"),
            no_chunk_index=_bool_option(config, "noChunkIndex"),
            no_statistics=_bool_option(config, "noStatistics"),
            no_summary_offsets=_bool_option(config, "noSummaryOffsets"),
        )

    def non_default_fields(self):
        """Names of options that differ from their defaults."""
        defaults = McapWriterOptions()
        return [f.name for f in fields(self) if getattr(self, f.name) != getattr(defaults, f.name)]


@dataclass
class WriteBufferingOptions:
    """
    How written bytes reach the disk.

    Attributes:
        buffer_capacity: Size of the sink buffer in bytes
        sync_after_write: fsync after every write() call
        buffer_entire_batch: Ignore buffer_capacity; close the open chunk and
            flush the sink after every written message
    """
    buffer_capacity: int = 1024
    sync_after_write: bool = False
    buffer_entire_batch: bool = False

    @staticmethod
    def from_config(config: Config) -> "WriteBufferingOptions":
        """
        Build buffering options from a configuration.

        Raises:
            ConfigError: If a value has the wrong type
        """
        return WriteBufferingOptions(
            buffer_capacity=_int_option(config, "bufferCapacity"),
            sync_after_write=_bool_option(config, "syncAfterWrite"),
            buffer_entire_batch=_bool_option(config, "bufferEntireBatch"),
        )


def load_storage_options(storage_config_uri: Optional[str] = None):
    """
    Load writer and buffering options from an optional YAML file.

    Args:
        storage_config_uri: Path to the storage config (None = defaults)

    Returns:
        Tuple of (McapWriterOptions, WriteBufferingOptions, Config)
    """
    config = Config(storage_config_uri)
    return (
        McapWriterOptions.from_config(config),
        WriteBufferingOptions.from_config(config),
        config,
    )
