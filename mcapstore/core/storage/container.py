"""
MCAP container access built on the ``mcap`` library.

ContainerWriter appends schema, channel and message records to a sink.
ContainerReader parses the summary (or rebuilds it by scanning the whole
file when the writer left none) and iterates messages in a requested order.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from mcap.exceptions import McapError
from mcap.reader import make_reader
from mcap.records import Channel, ChunkIndex, Message, Schema
from mcap.stream_reader import StreamReader
from mcap.writer import CompressionType, IndexType, Writer

from mcapstore.core.errors import ContainerOpenError, ContainerReadError, ContainerWriteError
from mcapstore.core.storage.options import Compression, CompressionLevel, McapWriterOptions
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)

PROFILE = "ros2"
LIBRARY = "mcapstore"

_COMPRESSION_TYPES = {
    Compression.NONE: CompressionType.NONE,
    Compression.LZ4: CompressionType.LZ4,
    Compression.ZSTD: CompressionType.ZSTD,
}


class McapReadOrder(Enum):
    """Orders the container can produce messages in."""

    LOG_TIME = "log_time"
    REVERSE_LOG_TIME = "reverse_log_time"
    FILE = "file"


@dataclass
class ContainerStatistics:
    """
    Counters from the statistics record.

    Attributes:
        message_count: Total number of messages
        message_start_time: Earliest log time
        message_end_time: Latest log time
        channel_message_counts: Message count per channel id
    """
    message_count: int = 0
    message_start_time: int = 0
    message_end_time: int = 0
    channel_message_counts: Dict[int, int] = field(default_factory=dict)


@dataclass
class ContainerSummary:
    """Schemas, channels, chunk indexes and statistics of a container."""
    schemas: Dict[int, Schema] = field(default_factory=dict)
    channels: Dict[int, Channel] = field(default_factory=dict)
    chunk_indexes: List[ChunkIndex] = field(default_factory=list)
    statistics: ContainerStatistics = field(default_factory=ContainerStatistics)
    scanned: bool = False

    def has_message_indexes(self) -> bool:
        """Whether any chunk carries a message index."""
        return any(ci.message_index_length > 0 for ci in self.chunk_indexes)


class ContainerWriter:
    """
    Writes records to an MCAP container.

    Attributes:
        options: Layout options the writer was created with
    """

    def __init__(self, output, options: McapWriterOptions):
        """
        Initialize the writer.

        Args:
            output: Writable binary stream
            options: Container layout options
        """
        self.options = options

        index_types = IndexType.ALL
        if options.no_message_index:
            index_types &= ~IndexType.MESSAGE
        if options.no_chunk_index:
            index_types &= ~IndexType.CHUNK
        if options.no_attachment_index:
            index_types &= ~IndexType.ATTACHMENT
        if options.no_metadata_index:
            index_types &= ~IndexType.METADATA

        use_statistics = not options.no_statistics
        use_summary_offsets = not options.no_summary_offsets
        repeat_schemas = not options.no_repeated_schemas
        repeat_channels = not options.no_repeated_channels

        if options.no_summary:
            index_types = IndexType.NONE
            use_statistics = False
            use_summary_offsets = False
            repeat_schemas = False
            repeat_channels = False

        self._warn_unsupported(options)

        self._writer = Writer(
            output,
            chunk_size=options.chunk_size,
            compression=_COMPRESSION_TYPES[options.compression],
            index_types=index_types,
            repeat_channels=repeat_channels,
            repeat_schemas=repeat_schemas,
            use_chunking=not options.no_chunking,
            use_statistics=use_statistics,
            use_summary_offsets=use_summary_offsets,
            enable_crcs=not options.no_chunk_crc,
            enable_data_crcs=options.enable_data_crc,
        )
        self._finished = False

    @staticmethod
    def _warn_unsupported(options: McapWriterOptions) -> None:
        ignored = []
        if options.compression_level is not CompressionLevel.DEFAULT:
            ignored.append("compressionLevel")
        if options.force_compression:
            ignored.append("forceCompression")
        if options.no_attachment_crc:
            ignored.append("noAttachmentCRC")
        if ignored:
            logger.warning("Writer options not supported by the mcap codec", ignored=ignored)

    def start(self, library: str = LIBRARY) -> None:
        """Write the file header."""
        self._writer.start(profile=PROFILE, library=library)

    def add_schema(self, name: str, encoding: str, data: bytes) -> int:
        """
        Append a schema record.

        Returns:
            Schema id
        """
        return self._writer.register_schema(name=name, encoding=encoding, data=data)

    def add_channel(
        self,
        topic: str,
        message_encoding: str,
        schema_id: int,
        metadata: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Append a channel record.

        Returns:
            Channel id
        """
        return self._writer.register_channel(
            topic=topic,
            message_encoding=message_encoding,
            schema_id=schema_id,
            metadata=metadata or {},
        )

    def write_message(
        self,
        channel_id: int,
        log_time: int,
        publish_time: int,
        data: bytes,
        sequence: int = 0,
    ) -> None:
        """Append a message record."""
        self._writer.add_message(
            channel_id=channel_id,
            log_time=log_time,
            data=data,
            publish_time=publish_time,
            sequence=sequence,
        )

    def close_last_chunk(self) -> None:
        """
        Write out the chunk currently being built, if any.

        Raises:
            ContainerWriteError: If the mcap writer offers no way to close a chunk early
        """
        # mcap has no public hook for this
        finalize_chunk = getattr(self._writer, "_Writer__finalize_chunk", None)
        if finalize_chunk is None:
            logger.error("mcap writer has no chunk finalizer", writer=type(self._writer).__name__)
            raise ContainerWriteError("cannot close the open chunk with this mcap version")
        finalize_chunk()

    def finish(self) -> None:
        """Write the summary section and footer."""
        if not self._finished:
            self._writer.finish()
            self._finished = True


class ContainerReader:
    """
    Reads an MCAP container from disk.

    Attributes:
        path: Path of the container file
    """

    def __init__(self, path: Path):
        """
        Open a container for reading.

        Args:
            path: Container file

        Raises:
            ContainerOpenError: If the file is missing or not an MCAP file
        """
        self.path = Path(path)

        try:
            self._stream = open(self.path, "rb")
        except OSError as e:
            raise ContainerOpenError(f"could not open {self.path}: {e}") from e

        try:
            self._reader = make_reader(self._stream)
            self.header = self._reader.get_header()
        except (McapError, OSError, ValueError) as e:
            self._stream.close()
            raise ContainerOpenError(f"{self.path} is not a valid MCAP file: {e}") from e

        logger.debug("Opened container", path=str(self.path), profile=self.header.profile)

    def size(self) -> int:
        """
        Get the container size on disk.

        Returns:
            Size in bytes
        """
        return self.path.stat().st_size

    def read_summary(self, allow_fallback_scan: bool = True) -> ContainerSummary:
        """
        Parse the summary section.

        Args:
            allow_fallback_scan: Rebuild the summary from the data section when
                the file has no summary or no statistics record

        Returns:
            Container summary

        Raises:
            ContainerReadError: If the summary is corrupt, or absent and
                scanning is not allowed
        """
        try:
            summary = self._reader.get_summary()
        except (McapError, OSError, ValueError) as e:
            raise ContainerReadError(f"failed to read summary of {self.path}: {e}") from e

        if summary is not None and summary.statistics is not None:
            stats = summary.statistics
            return ContainerSummary(
                schemas=dict(summary.schemas),
                channels=dict(summary.channels),
                chunk_indexes=list(summary.chunk_indexes),
                statistics=ContainerStatistics(
                    message_count=stats.message_count,
                    message_start_time=stats.message_start_time,
                    message_end_time=stats.message_end_time,
                    channel_message_counts=dict(stats.channel_message_counts),
                ),
            )

        if not allow_fallback_scan:
            raise ContainerReadError(f"{self.path} has no summary")

        logger.info("No summary statistics found, scanning container", path=str(self.path))
        return self._scan_summary()

    def _scan_summary(self) -> ContainerSummary:
        summary = ContainerSummary(scanned=True)
        stats = summary.statistics
        start_time: Optional[int] = None
        end_time: Optional[int] = None

        self._stream.seek(0)
        try:
            for record in StreamReader(self._stream, skip_magic=False).records:
                if isinstance(record, Message):
                    stats.message_count += 1
                    stats.channel_message_counts[record.channel_id] = (
                        stats.channel_message_counts.get(record.channel_id, 0) + 1
                    )
                    if start_time is None or record.log_time < start_time:
                        start_time = record.log_time
                    if end_time is None or record.log_time > end_time:
                        end_time = record.log_time
                elif isinstance(record, Schema):
                    summary.schemas[record.id] = record
                elif isinstance(record, Channel):
                    summary.channels[record.id] = record
                elif isinstance(record, ChunkIndex):
                    summary.chunk_indexes.append(record)
        except (McapError, OSError, ValueError) as e:
            raise ContainerReadError(f"failed to scan {self.path}: {e}") from e

        stats.message_start_time = start_time or 0
        stats.message_end_time = end_time or 0

        logger.debug(
            "Scanned container",
            path=str(self.path),
            messages=stats.message_count,
            channels=len(summary.channels),
        )

        return summary

    def read_messages(
        self,
        start_time: Optional[int] = None,
        read_order: McapReadOrder = McapReadOrder.LOG_TIME,
        topics: Optional[Iterable[str]] = None,
        topic_filter: Optional[Callable[[str], bool]] = None,
    ) -> Iterator[Tuple[Channel, Message]]:
        """
        Iterate over messages.

        Args:
            start_time: Skip messages logged before this time
            read_order: Order to yield messages in
            topics: Exact topic names to include (None = all)
            topic_filter: Predicate applied to each message's topic

        Yields:
            (channel, message) pairs

        Raises:
            ContainerReadError: If a record cannot be decoded
        """
        messages = self._reader.iter_messages(
            topics=list(topics) if topics is not None else None,
            start_time=start_time,
            log_time_order=read_order is not McapReadOrder.FILE,
            reverse=read_order is McapReadOrder.REVERSE_LOG_TIME,
        )
        try:
            for _, channel, message in messages:
                if topic_filter is not None and not topic_filter(channel.topic):
                    continue
                yield channel, message
        except (McapError, OSError) as e:
            raise ContainerReadError(f"failed to read messages from {self.path}: {e}") from e

    def close(self) -> None:
        """Close the underlying file."""
        if not self._stream.closed:
            self._stream.close()
            logger.debug("Closed container", path=str(self.path))
