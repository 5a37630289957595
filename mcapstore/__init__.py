"""
mcapstore - MCAP storage plugin for robot recordings.

This package records and replays timestamped, topic-addressed messages in
MCAP files, with:
- Schema records holding fully resolved ROS message definitions
- Configurable chunking, compression, indexing and write buffering
- Indexed playback with topic filters, seeking and read-order control
"""

__version__ = "0.1.0"

from mcapstore.core.storage import (
    IOFlag,
    McapStorage,
    ReadOrder,
    ReadOrderSortBy,
    SerializedBagMessage,
    StorageFilter,
    TopicMetadata,
)

__all__ = [
    "IOFlag",
    "McapStorage",
    "ReadOrder",
    "ReadOrderSortBy",
    "SerializedBagMessage",
    "StorageFilter",
    "TopicMetadata",
]
