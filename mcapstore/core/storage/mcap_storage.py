"""
MCAP storage engine.

Implements the read/write storage interface on top of an MCAP container:
- Write path: topic bookkeeping, schema/channel creation, message appends,
  flush/sync policy and running metadata
- Read path: lazy summary parsing, a pull iterator with one message of
  look-ahead, topic filtering, seeking and read-order selection

A single instance is owned by one thread and opened for either reading or
writing, never both.
"""

import copy
import re
import struct
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from mcapstore.core.definitions.locator import default_locator
from mcapstore.core.definitions.message_definition_cache import MessageDefinitionCache
from mcapstore.core.errors import (
    ContainerOpenError,
    ContainerWriteError,
    InternalConsistencyError,
    InvalidFilterError,
    NoNextMessageError,
    SyncError,
    UnknownTopicError,
    UnsupportedReadOrderError,
)
from mcapstore.core.storage.container import (
    ContainerReader,
    ContainerSummary,
    ContainerWriter,
    McapReadOrder,
)
from mcapstore.core.storage.interface import (
    BagMetadata,
    IOFlag,
    ReadOrder,
    ReadOrderSortBy,
    SerializedBagMessage,
    StorageFilter,
    StorageInterface,
    TopicInformation,
    TopicMetadata,
)
from mcapstore.core.storage.options import load_storage_options
from mcapstore.core.storage.schema_cache import QOS_METADATA_KEY, SchemaChannelCache
from mcapstore.core.storage.sink import BufferedSink
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)

UINT64_MASK = (1 << 64) - 1


class McapStorage(StorageInterface):
    """
    Storage plugin for the MCAP file format.

    Iterator states:
        Uninitialized - nothing open for reading, has_next() is False
        Positioned - an iterator exists with zero or one message buffered
        Exhausted - the iterator has no more messages

    Attributes:
        FILE_EXTENSION: Suffix appended to the uri in write mode
        STORAGE_IDENTIFIER: Name the plugin is registered under
        MINIMUM_SPLIT_FILE_SIZE: Smallest size a recording may be split at
    """

    FILE_EXTENSION = ".mcap"
    STORAGE_IDENTIFIER = "mcap"
    MINIMUM_SPLIT_FILE_SIZE = 1024

    def __init__(self, definitions: Optional[MessageDefinitionCache] = None):
        """
        Initialize an unopened storage.

        Args:
            definitions: Definition resolver to share between storages. When
                None, one is built at open time from the storage config.
        """
        self._opened_as: Optional[IOFlag] = None
        self._logger = logger
        self._closed = False
        self._relative_path = ""

        self._metadata = BagMetadata(storage_identifier=self.STORAGE_IDENTIFIER)
        self._topics: Dict[str, TopicInformation] = {}

        self._reader: Optional[ContainerReader] = None
        self._summary: Optional[ContainerSummary] = None
        self._has_read_summary = False
        self._message_indexes_found = True
        self._message_iterator: Optional[Iterator] = None
        self._next: Optional[SerializedBagMessage] = None
        self._storage_filter = StorageFilter()
        self._read_order = McapReadOrder.LOG_TIME

        self._sink: Optional[BufferedSink] = None
        self._writer: Optional[ContainerWriter] = None
        self._definitions = definitions
        self._schemas: Optional[SchemaChannelCache] = None
        self._sync_after_write = False
        self._flush_after_write = False

    # Lifecycle

    def open(
        self,
        uri: str,
        io_flag: IOFlag = IOFlag.READ_WRITE,
        storage_config_uri: Optional[str] = None,
    ) -> None:
        """
        Open a file for reading or writing.

        Args:
            uri: File to read, or path prefix to write (".mcap" is appended)
            io_flag: READ_ONLY, or READ_WRITE/APPEND for writing
            storage_config_uri: Optional YAML storage config (write mode)

        Raises:
            ContainerOpenError: If the file, sink or storage config cannot be opened
            ConfigError: If the storage config holds invalid values
        """
        if self._opened_as is not None:
            raise ContainerOpenError(f"Storage is already open: {self._relative_path}")

        if io_flag is IOFlag.APPEND:
            # APPEND is never requested by the recorder; treat it as READ_WRITE
            io_flag = IOFlag.READ_WRITE

        if io_flag is IOFlag.READ_ONLY:
            self._relative_path = uri
        else:
            self._relative_path = uri + self.FILE_EXTENSION
        self._logger = logger.bind(path=self._relative_path, mode=io_flag.value)

        if io_flag is IOFlag.READ_ONLY:
            self._reader = ContainerReader(Path(uri))
        else:
            self._open_writer(storage_config_uri)

        self._opened_as = io_flag
        self._metadata.relative_file_paths = [self._relative_path]

        self._logger.info("Opened storage")

    def _open_writer(self, storage_config_uri: Optional[str]) -> None:
        try:
            writer_options, buffering, config = load_storage_options(storage_config_uri)
        except OSError as e:
            raise ContainerOpenError(
                f"could not read storage config {storage_config_uri}: {e}"
            ) from e

        self._sync_after_write = buffering.sync_after_write
        self._flush_after_write = buffering.buffer_entire_batch

        capacity = None if buffering.buffer_entire_batch else buffering.buffer_capacity
        sink = BufferedSink()
        if not sink.open(Path(self._relative_path), capacity):
            raise ContainerOpenError("could not open file")

        self._sink = sink
        self._writer = ContainerWriter(sink, writer_options)
        self._writer.start()

        if self._definitions is None:
            self._definitions = MessageDefinitionCache(
                default_locator(config.get("definitionSearchPaths"))
            )
        self._schemas = SchemaChannelCache(self._writer, self._definitions)

        self._logger.debug(
            "Configured writer",
            compression=writer_options.compression.value,
            chunk_size=writer_options.chunk_size,
            buffer_capacity=capacity,
            sync_after_write=self._sync_after_write,
            non_default_options=writer_options.non_default_fields(),
        )

    def close(self) -> None:
        """Finish the file (summary and footer in write mode) and release it."""
        if self._opened_as is None or self._closed:
            return

        try:
            if self._writer is not None:
                self._writer.finish()
        finally:
            if self._sink is not None:
                self._sink.close()
            if self._reader is not None:
                self._reader.close()
            self._message_iterator = None
            self._next = None
            self._closed = True

        self._logger.info("Closed storage", messages=self._metadata.message_count)

    # Info

    def get_metadata(self) -> BagMetadata:
        """
        Build a metadata snapshot.

        In read mode the snapshot comes from the container's statistics; in
        write mode from the counters kept while writing.

        Returns:
            Bag metadata

        Raises:
            InternalConsistencyError: If a channel references a missing schema
        """
        if self._reader is not None:
            self._rebuild_metadata_from_summary()
        else:
            self._metadata.topics_with_message_count = [
                TopicInformation(
                    topic_metadata=replace(info.topic_metadata),
                    message_count=info.message_count,
                )
                for info in self._topics.values()
            ]

        self._metadata.version = 2
        self._metadata.storage_identifier = self.get_storage_identifier()
        self._metadata.bag_size = self.get_bagfile_size()
        self._metadata.relative_file_paths = [self.get_relative_file_path()]

        return copy.deepcopy(self._metadata)

    def _rebuild_metadata_from_summary(self) -> None:
        self.ensure_summary_read()

        stats = self._summary.statistics
        self._metadata.message_count = stats.message_count
        self._metadata.duration = stats.message_end_time - stats.message_start_time
        self._metadata.starting_time = stats.message_start_time

        topics: List[TopicInformation] = []
        for channel_id, channel in self._summary.channels.items():
            schema = self._summary.schemas.get(channel.schema_id)
            if schema is None:
                raise InternalConsistencyError(
                    f"Could not find schema for topic {channel.topic}"
                )

            topics.append(
                TopicInformation(
                    topic_metadata=TopicMetadata(
                        name=channel.topic,
                        type=schema.name,
                        serialization_format=channel.message_encoding,
                        offered_qos_profiles=channel.metadata.get(QOS_METADATA_KEY, ""),
                    ),
                    message_count=stats.channel_message_counts.get(channel_id, 0),
                )
            )

        self._metadata.topics_with_message_count = topics

    def get_relative_file_path(self) -> str:
        return self._relative_path

    def get_bagfile_size(self) -> int:
        """
        Get the size of the open file.

        Returns:
            Size in bytes, or 0 if nothing is open
        """
        if self._reader is not None:
            return self._reader.size()
        if self._sink is not None:
            return self._sink.size()
        return 0

    def get_storage_identifier(self) -> str:
        return self.STORAGE_IDENTIFIER

    def get_minimum_split_file_size(self) -> int:
        return self.MINIMUM_SPLIT_FILE_SIZE

    # Read path

    def ensure_summary_read(self) -> None:
        """
        Parse the container summary once.

        Falls back to scanning the file when it has no summary. Without chunk
        message indexes, messages are read in file order from then on.

        Raises:
            ContainerReadError: If the summary cannot be parsed
        """
        if self._reader is None or self._has_read_summary:
            return

        self._summary = self._reader.read_summary(allow_fallback_scan=True)

        self._message_indexes_found = self._summary.has_message_indexes()
        if not self._message_indexes_found:
            self._logger.warning("No message indices found, falling back to reading in file order")
            self._read_order = McapReadOrder.FILE

        self._has_read_summary = True

    def _effective_read_order(self) -> McapReadOrder:
        if not self._message_indexes_found:
            return McapReadOrder.FILE
        return self._read_order

    def _topic_selection(self) -> Tuple[Optional[List[str]], Optional[Callable[[str], bool]]]:
        if self._storage_filter.topics_regex:
            try:
                pattern = re.compile(self._storage_filter.topics_regex)
            except re.error as e:
                raise InvalidFilterError(
                    f"Invalid topic regex {self._storage_filter.topics_regex!r}: {e}"
                ) from e
            return None, lambda topic: pattern.fullmatch(topic) is not None

        if self._storage_filter.topics:
            return list(self._storage_filter.topics), None

        return None, None

    def reset_iterator(self, start_time: int = 0) -> None:
        """
        Recreate the message iterator.

        Args:
            start_time: Skip messages logged before this time (ns)
        """
        if self._reader is None:
            return

        self.ensure_summary_read()

        topics, topic_filter = self._topic_selection()
        self._message_iterator = self._reader.read_messages(
            start_time=max(start_time, 0),
            read_order=self._effective_read_order(),
            topics=topics,
            topic_filter=topic_filter,
        )
        self._next = None

        self._logger.debug(
            "Reset iterator",
            start_time=start_time,
            read_order=self._effective_read_order().value,
            topics=topics,
            topics_regex=self._storage_filter.topics_regex or None,
        )

    def _read_and_enqueue_message(self) -> bool:
        if self._message_iterator is None:
            return False
        if self._next is not None:
            return True

        try:
            channel, message = next(self._message_iterator)
        except StopIteration:
            return False

        self._next = SerializedBagMessage(
            topic_name=channel.topic,
            time_stamp=message.log_time,
            serialized_data=bytes(message.data),
        )
        return True

    def has_next(self) -> bool:
        """
        Check whether another message is available, buffering it if so.

        Returns:
            True if read_next() will return a message
        """
        if self._reader is None or self._closed:
            return False

        if self._message_iterator is None:
            self.reset_iterator()

        if self._next is not None:
            return True

        return self._read_and_enqueue_message()

    def read_next(self) -> SerializedBagMessage:
        """
        Hand out the next message.

        Returns:
            The buffered message

        Raises:
            NoNextMessageError: If no message is available
        """
        if not self.has_next():
            raise NoNextMessageError("No next message is available.")

        message, self._next = self._next, None
        return message

    def get_all_topics_and_types(self) -> List[TopicMetadata]:
        return [info.topic_metadata for info in self.get_metadata().topics_with_message_count]

    def set_filter(self, storage_filter: StorageFilter) -> None:
        """
        Replace the topic filter and restart iteration from the beginning.

        Args:
            storage_filter: New filter
        """
        self._storage_filter = replace(
            storage_filter,
            topics=list(storage_filter.topics),
        )
        self.reset_iterator()

    def reset_filter(self) -> None:
        self.set_filter(StorageFilter())

    def seek(self, timestamp: int) -> None:
        """
        Restart iteration at an absolute time.

        Args:
            timestamp: First log time to include (ns)
        """
        self.reset_iterator(timestamp)

    def set_read_order(self, read_order: ReadOrder) -> None:
        """
        Change the iteration order, restarting iteration if it changed.

        Args:
            read_order: Requested order

        Raises:
            UnsupportedReadOrderError: For reverse file order or publish-time order
        """
        if read_order.sort_by is ReadOrderSortBy.RECEIVED_TIMESTAMP:
            if read_order.reverse:
                next_read_order = McapReadOrder.REVERSE_LOG_TIME
            else:
                next_read_order = McapReadOrder.LOG_TIME
        elif read_order.sort_by is ReadOrderSortBy.FILE:
            if read_order.reverse:
                raise UnsupportedReadOrderError("Reverse file order reading not implemented.")
            next_read_order = McapReadOrder.FILE
        else:
            raise UnsupportedReadOrderError(
                "PublishedTimestamp read order not yet implemented"
            )

        if next_read_order is not self._read_order:
            self._read_order = next_read_order
            self.reset_iterator()

    # Write path

    def write(
        self,
        message: Union[SerializedBagMessage, Sequence[SerializedBagMessage]],
    ) -> None:
        """
        Append one message or a batch of messages.

        A batch is written message by message; if one fails, the messages
        before it stay written.

        Raises:
            UnknownTopicError: If a message's topic was never created
            ContainerWriteError: If the codec fails to append
            SyncError: If syncing to disk fails
        """
        if isinstance(message, SerializedBagMessage):
            self._write_one(message)
            return

        for msg in message:
            self._write_one(msg)

    def _write_one(self, msg: SerializedBagMessage) -> None:
        if self._writer is None or self._closed:
            raise ContainerWriteError("Storage is not open for writing")

        topic_info = self._topics.get(msg.topic_name)
        if topic_info is None:
            raise UnknownTopicError(f'Unknown message topic "{msg.topic_name}"')

        channel_id = self._schemas.channel_id(msg.topic_name)
        if channel_id is None:
            raise InternalConsistencyError(
                f'Channel reference not found for topic: "{msg.topic_name}"'
            )

        log_time = msg.time_stamp
        if log_time < 0:
            self._logger.warning(
                "Invalid message timestamp",
                timestamp=msg.time_stamp,
                topic=msg.topic_name,
            )
            log_time &= UINT64_MASK

        try:
            self._writer.write_message(
                channel_id=channel_id,
                log_time=log_time,
                publish_time=log_time,
                data=msg.serialized_data,
                sequence=0,
            )
        except (OSError, ValueError, struct.error) as e:
            raise ContainerWriteError(
                f"Failed to write {len(msg.serialized_data)} byte message to MCAP file: {e}"
            ) from e

        if self._sync_after_write and not self._sink.sync_to_disk():
            raise SyncError("sync failed")

        if self._flush_after_write:
            self._writer.close_last_chunk()
            self._sink.flush()

        if self._metadata.message_count == 0:
            self._metadata.starting_time = msg.time_stamp

        topic_info.message_count += 1
        self._metadata.message_count += 1
        self._metadata.duration = max(
            self._metadata.duration,
            msg.time_stamp - self._metadata.starting_time,
        )

    def create_topic(self, topic: TopicMetadata) -> None:
        """
        Declare a topic, writing its schema and channel if they are new.

        A second call for the same name is ignored. A missing definition file
        is logged and the schema is written empty.

        Args:
            topic: Topic to declare

        Raises:
            InvalidResourceNameError: If the topic type name is malformed
        """
        if self._schemas is None or self._closed:
            raise ContainerWriteError("Storage is not open for writing")

        if topic.name in self._topics:
            self._logger.warning("Topic already exists", topic=topic.name)
            return

        resolution = self._schemas.resolve_schema(topic.type)
        self._topics[topic.name] = TopicInformation(topic_metadata=replace(topic), message_count=0)
        self._schemas.resolve_channel(topic, resolution.schema_id)

        self._logger.info(
            "Created topic",
            topic=topic.name,
            type=topic.type,
            schema_id=resolution.schema_id,
            definition_missing=resolution.recovered,
        )

    def remove_topic(self, topic: TopicMetadata) -> None:
        """
        Forget a topic. Its schema and channel records stay in the file and are
        reused if the topic is created again.
        """
        self._topics.pop(topic.name, None)

    def __repr__(self) -> str:
        """String representation."""
        mode = self._opened_as.value if self._opened_as is not None else "closed"
        return f"McapStorage(path={self._relative_path!r}, mode={mode})"
