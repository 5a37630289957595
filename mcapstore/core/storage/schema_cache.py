"""
Schema and channel bookkeeping for the write path.

Each datatype gets one schema record and each topic one channel record for
the lifetime of an open file, no matter how often topics are created or removed.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from mcapstore.core.definitions.message_definition_cache import (
    DefinitionFormat,
    MessageDefinitionCache,
)
from mcapstore.core.errors import DefinitionNotFoundError
from mcapstore.core.storage.container import ContainerWriter
from mcapstore.core.storage.interface import TopicMetadata
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)

QOS_METADATA_KEY = "offered_qos_profiles"

SCHEMA_ENCODINGS = {
    DefinitionFormat.MSG: "ros2msg",
    DefinitionFormat.IDL: "ros2idl",
}


@dataclass(frozen=True)
class SchemaResolution:
    """
    Outcome of looking up the schema for a datatype.

    Attributes:
        schema_id: Id of the schema record
        created: Whether the schema record was written by this call
        error: Missing-definition error that was recovered from by writing an
            empty schema; None when the definition resolved cleanly
    """
    schema_id: int
    created: bool
    error: Optional[DefinitionNotFoundError] = None

    @property
    def recovered(self) -> bool:
        return self.error is not None


class SchemaChannelCache:
    """Maps datatypes to schema ids and topics to channel ids."""

    def __init__(self, writer: ContainerWriter, definitions: MessageDefinitionCache):
        """
        Initialize the cache.

        Args:
            writer: Container the records are written to
            definitions: Resolver for full definition text
        """
        self._writer = writer
        self._definitions = definitions
        self._schema_ids: Dict[str, int] = {}
        self._channel_ids: Dict[str, int] = {}

    def schema_count(self) -> int:
        return len(self._schema_ids)

    def channel_count(self) -> int:
        return len(self._channel_ids)

    def channel_id(self, topic_name: str) -> Optional[int]:
        """Channel id for a topic, or None if no channel was written."""
        return self._channel_ids.get(topic_name)

    def resolve_schema(self, datatype: str) -> SchemaResolution:
        """
        Return the schema for a datatype, writing it on first use.

        A definition that cannot be found does not fail the call: the schema is
        written with empty encoding and data and the error is returned.

        Args:
            datatype: Package-qualified type name

        Returns:
            Schema resolution

        Raises:
            InvalidResourceNameError: If the datatype name is malformed
        """
        schema_id = self._schema_ids.get(datatype)
        if schema_id is not None:
            return SchemaResolution(schema_id=schema_id, created=False)

        error: Optional[DefinitionNotFoundError] = None
        try:
            definition_format, full_text = self._definitions.get_full_text(datatype)
            encoding = SCHEMA_ENCODINGS[definition_format]
            data = full_text.encode("utf-8", errors="surrogateescape")
        except DefinitionNotFoundError as e:
            logger.error(
                "Definition file(s) missing",
                datatype=datatype,
                missing=str(e),
            )
            encoding = ""
            data = b""
            error = e

        schema_id = self._writer.add_schema(name=datatype, encoding=encoding, data=data)
        self._schema_ids[datatype] = schema_id

        logger.debug("Added schema", datatype=datatype, schema_id=schema_id, encoding=encoding)

        return SchemaResolution(schema_id=schema_id, created=True, error=error)

    def resolve_channel(self, topic: TopicMetadata, schema_id: int) -> int:
        """
        Return the channel for a topic, writing it on first use.

        Args:
            topic: Topic description
            schema_id: Schema the channel references

        Returns:
            Channel id
        """
        channel_id = self._channel_ids.get(topic.name)
        if channel_id is not None:
            return channel_id

        channel_id = self._writer.add_channel(
            topic=topic.name,
            message_encoding=topic.serialization_format,
            schema_id=schema_id,
            metadata={QOS_METADATA_KEY: topic.offered_qos_profiles},
        )
        self._channel_ids[topic.name] = channel_id

        logger.debug("Added channel", topic=topic.name, channel_id=channel_id, schema_id=schema_id)

        return channel_id
