"""
MCAP storage engine.

This package provides the read/write storage plugin with:
- Schema and channel records built from resolved message definitions
- Buffered writes with optional per-message sync or flush
- Indexed reads with topic filtering, seeking and read-order selection
"""

from mcapstore.core.storage.container import McapReadOrder
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
from mcapstore.core.storage.mcap_storage import McapStorage
from mcapstore.core.storage.registry import StoragePluginRegistry

__all__ = [
    "BagMetadata",
    "IOFlag",
    "McapReadOrder",
    "McapStorage",
    "ReadOrder",
    "ReadOrderSortBy",
    "SerializedBagMessage",
    "StorageFilter",
    "StorageInterface",
    "StoragePluginRegistry",
    "TopicInformation",
    "TopicMetadata",
]
