"""
Message definition resolution.

Turns a ROS type name into the full, dependency-inclusive definition text
embedded in MCAP schema records.
"""

from mcapstore.core.definitions.locator import (
    AmentIndexLocator,
    ResourceLocator,
    SearchPathLocator,
)
from mcapstore.core.definitions.message_definition_cache import (
    DefinitionFormat,
    DefinitionIdentifier,
    MessageDefinitionCache,
    MessageSpec,
    parse_dependencies,
)

__all__ = [
    "AmentIndexLocator",
    "DefinitionFormat",
    "DefinitionIdentifier",
    "MessageDefinitionCache",
    "MessageSpec",
    "ResourceLocator",
    "SearchPathLocator",
    "parse_dependencies",
]
