"""
Storage plugin interface and the data model exchanged with the host.

The recording/playback framework only ever talks to a StorageInterface; how a
concrete plugin is located is left to the host (see registry.py).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Union


class IOFlag(Enum):
    """Mode a storage is opened in."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"
    APPEND = "append"


class ReadOrderSortBy(Enum):
    """Timestamp a reader may sort by."""

    RECEIVED_TIMESTAMP = "received_timestamp"
    PUBLISHED_TIMESTAMP = "published_timestamp"
    FILE = "file"


@dataclass(frozen=True)
class ReadOrder:
    """
    Requested iteration order.

    Attributes:
        sort_by: Which ordering key to use
        reverse: Whether to iterate in descending order
    """
    sort_by: ReadOrderSortBy = ReadOrderSortBy.RECEIVED_TIMESTAMP
    reverse: bool = False


@dataclass
class StorageFilter:
    """
    Topic filter applied while reading.

    Attributes:
        topics: Exact topic names to include (empty = all)
        topics_regex: Pattern matched against the whole topic name; takes
            precedence over topics when set
    """
    topics: List[str] = field(default_factory=list)
    topics_regex: str = ""


@dataclass
class TopicMetadata:
    """
    Description of a topic as declared by the recorder.

    Attributes:
        name: Topic name
        type: Package-qualified message type
        serialization_format: Message encoding (e.g. cdr)
        offered_qos_profiles: Serialized QoS profiles
    """
    name: str
    type: str
    serialization_format: str
    offered_qos_profiles: str = ""


@dataclass
class TopicInformation:
    """Topic metadata together with its running message count."""
    topic_metadata: TopicMetadata
    message_count: int = 0


@dataclass
class SerializedBagMessage:
    """
    A single serialized message.

    Attributes:
        topic_name: Topic the message belongs to
        time_stamp: Receive time in nanoseconds since epoch
        serialized_data: Raw payload bytes
    """
    topic_name: str
    time_stamp: int
    serialized_data: bytes


@dataclass
class BagMetadata:
    """Aggregate description of a recording file."""
    version: int = 2
    bag_size: int = 0
    storage_identifier: str = ""
    relative_file_paths: List[str] = field(default_factory=list)
    duration: int = 0
    starting_time: int = 0
    message_count: int = 0
    topics_with_message_count: List[TopicInformation] = field(default_factory=list)


class StorageInterface(ABC):
    """Read/write contract a storage plugin offers the recording framework."""

    @abstractmethod
    def open(
        self,
        uri: str,
        io_flag: IOFlag = IOFlag.READ_WRITE,
        storage_config_uri: Optional[str] = None,
    ) -> None:
        """Open a storage file for reading or writing."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying file."""

    @abstractmethod
    def get_metadata(self) -> BagMetadata:
        """Return aggregate metadata for the open file."""

    @abstractmethod
    def get_relative_file_path(self) -> str:
        """Return the path of the open file."""

    @abstractmethod
    def get_bagfile_size(self) -> int:
        """Return the current on-disk size in bytes."""

    @abstractmethod
    def get_storage_identifier(self) -> str:
        """Return the identifier this plugin is registered under."""

    @abstractmethod
    def get_minimum_split_file_size(self) -> int:
        """Return the smallest size a recording may be split at."""

    @abstractmethod
    def set_read_order(self, read_order: ReadOrder) -> None:
        """Change the iteration order."""

    @abstractmethod
    def has_next(self) -> bool:
        """Whether another message can be read."""

    @abstractmethod
    def read_next(self) -> SerializedBagMessage:
        """Return the next message."""

    @abstractmethod
    def get_all_topics_and_types(self) -> List[TopicMetadata]:
        """Return metadata of every topic in the file."""

    @abstractmethod
    def set_filter(self, storage_filter: StorageFilter) -> None:
        """Restrict iteration to matching topics."""

    @abstractmethod
    def reset_filter(self) -> None:
        """Remove any topic restriction."""

    @abstractmethod
    def seek(self, timestamp: int) -> None:
        """Reposition iteration at an absolute timestamp."""

    @abstractmethod
    def write(
        self,
        message: Union[SerializedBagMessage, Sequence[SerializedBagMessage]],
    ) -> None:
        """Append one message or a batch of messages."""

    @abstractmethod
    def create_topic(self, topic: TopicMetadata) -> None:
        """Declare a topic before writing to it."""

    @abstractmethod
    def remove_topic(self, topic: TopicMetadata) -> None:
        """Forget a declared topic."""

    def __enter__(self) -> "StorageInterface":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
