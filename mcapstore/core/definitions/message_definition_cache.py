"""
Message definition resolution for schema records.

Loads ``.msg`` or ``.idl`` definition files, extracts the types they depend on,
and concatenates a root type with all of its transitive dependencies into the
single text blob stored as an MCAP schema.

Output layout (MSG format)::

    <root text>
    ================================================================================
    MSG: pkg/Dependency
    <dependency text>

In IDL format every entry, including the root, is preceded by an ``IDL:`` header.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from mcapstore.core.definitions.locator import ResourceLocator, default_locator
from mcapstore.core.errors import (
    DefinitionNotFoundError,
    InvalidResourceNameError,
)
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)

# foo_msgs/Bar or foo_msgs/msg/Bar
PACKAGE_TYPENAME_REGEX = re.compile(r"^([a-zA-Z0-9_]+)/(?:msg/)?([a-zA-Z0-9_]+)$")

# "foo_msgs/Bar" in "foo_msgs/Bar[] bar"
MSG_FIELD_TYPE_REGEX = re.compile(r"(?:^|\n)\s*([a-zA-Z0-9_/]+)(?:\[[^\]]*\])?\s+")

# "foo_msgs/msg/Bar" in "#include <foo_msgs/msg/Bar.idl>"
IDL_FIELD_TYPE_REGEX = re.compile(r'(?:^|\n)#include\s+(?:"|<)([a-zA-Z0-9_/]+)\.idl(?:"|>)')

PRIMITIVE_TYPES: FrozenSet[str] = frozenset({
    "bool",
    "byte",
    "char",
    "float32",
    "float64",
    "int8",
    "uint8",
    "int16",
    "uint16",
    "int32",
    "uint32",
    "int64",
    "uint64",
    "string",
})

SEPARATOR = "\n" + "=" * 80 + "\n"


class DefinitionFormat(Enum):
    """Definition file flavours."""

    MSG = "msg"
    IDL = "idl"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def header_label(self) -> str:
        return self.name


@dataclass(frozen=True)
class DefinitionIdentifier:
    """Cache key for a single definition file."""
    format: DefinitionFormat
    package_resource_name: str


@dataclass(frozen=True)
class MessageSpec:
    """
    A loaded definition file.

    Attributes:
        format: Format the text was read in
        text: Raw file contents
        dependencies: Fully qualified names of referenced non-primitive types
    """
    format: DefinitionFormat
    text: str
    dependencies: FrozenSet[str]


def _parse_msg_dependencies(text: str, package_context: str) -> FrozenSet[str]:
    dependencies = set()
    for match in MSG_FIELD_TYPE_REGEX.finditer(text):
        type_name = match.group(1)
        if type_name in PRIMITIVE_TYPES:
            continue
        if "/" not in type_name:
            dependencies.add(f"{package_context}/{type_name}")
        else:
            dependencies.add(type_name)
    return frozenset(dependencies)


def _parse_idl_dependencies(text: str) -> FrozenSet[str]:
    return frozenset(match.group(1) for match in IDL_FIELD_TYPE_REGEX.finditer(text))


def parse_dependencies(
    definition_format: DefinitionFormat,
    text: str,
    package_context: str,
) -> FrozenSet[str]:
    """
    Extract the types a definition refers to.

    Args:
        definition_format: Format of the text
        text: Definition file contents
        package_context: Package the definition belongs to, used to qualify
            bare type names in MSG files

    Returns:
        Set of package-qualified type names
    """
    if definition_format is DefinitionFormat.MSG:
        return _parse_msg_dependencies(text, package_context)
    return _parse_idl_dependencies(text)


def split_resource_name(package_resource_name: str) -> Tuple[str, str]:
    """
    Split ``pkg/Type`` or ``pkg/msg/Type`` into package and type.

    Raises:
        InvalidResourceNameError: If the name has another shape
    """
    match = PACKAGE_TYPENAME_REGEX.match(package_resource_name)
    if match is None:
        raise InvalidResourceNameError(
            f"Invalid package resource name: {package_resource_name}"
        )
    return match.group(1), match.group(2)


class MessageDefinitionCache:
    """
    Loads definition files and builds full schema text.

    Entries are never evicted; a MessageSpec handed out stays valid and
    unchanged for the lifetime of the cache. Not thread-safe.
    """

    def __init__(self, locator: Optional[ResourceLocator] = None):
        """
        Initialize the cache.

        Args:
            locator: Package share-directory lookup (default: ament index)
        """
        self._locator = locator if locator is not None else default_locator()
        self._specs: Dict[DefinitionIdentifier, MessageSpec] = {}

    def __len__(self) -> int:
        return len(self._specs)

    def _definition_path(self, package_resource_name: str, definition_format: DefinitionFormat):
        package, type_name = split_resource_name(package_resource_name)
        share_dir = self._locator.get_package_share_directory(package)
        return package, share_dir / "msg" / f"{type_name}{definition_format.extension}"

    def msg_definition_exists(self, package_resource_name: str) -> bool:
        """
        Check whether a ``.msg`` file exists for a type.

        Raises:
            InvalidResourceNameError: If the name is malformed
            PackageNotFoundError: If the package cannot be located
        """
        _, path = self._definition_path(package_resource_name, DefinitionFormat.MSG)
        return path.is_file()

    def load_message_spec(self, identifier: DefinitionIdentifier) -> MessageSpec:
        """
        Return the spec for a definition, reading it on first use.

        Args:
            identifier: Format and type name to load

        Returns:
            Cached message spec

        Raises:
            InvalidResourceNameError: If the type name is malformed
            DefinitionNotFoundError: If the definition file cannot be read
        """
        spec = self._specs.get(identifier)
        if spec is not None:
            return spec

        package, path = self._definition_path(identifier.package_resource_name, identifier.format)

        try:
            # undecodable bytes survive as surrogates and are restored on encode
            text = path.read_bytes().decode("utf-8", errors="surrogateescape")
        except OSError as e:
            raise DefinitionNotFoundError(identifier.package_resource_name) from e

        spec = MessageSpec(
            format=identifier.format,
            text=text,
            dependencies=parse_dependencies(identifier.format, text, package),
        )
        self._specs[identifier] = spec

        logger.debug(
            "Loaded message definition",
            type=identifier.package_resource_name,
            format=identifier.format.value,
            dependencies=len(spec.dependencies),
        )

        return spec

    def get_full_text(self, root_package_resource_name: str) -> Tuple[DefinitionFormat, str]:
        """
        Concatenate a type's definition with all of its dependencies.

        The format is detected once for the root and applied to every
        dependency. Dependencies are visited depth first in sorted order and
        each type appears once, at the position it is first reached.

        Args:
            root_package_resource_name: Type to resolve, e.g. ``geometry_msgs/msg/Pose``

        Returns:
            Tuple of (format, full definition text)

        Raises:
            InvalidResourceNameError: If any type name is malformed
            DefinitionNotFoundError: If any definition file is missing
        """
        definition_format = DefinitionFormat.MSG
        if not self.msg_definition_exists(root_package_resource_name):
            definition_format = DefinitionFormat.IDL

        parts: List[str] = []
        written = 0
        seen = {root_package_resource_name}

        def append(package_resource_name: str) -> Iterator[str]:
            nonlocal written
            spec = self.load_message_spec(
                DefinitionIdentifier(definition_format, package_resource_name)
            )
            # MSG roots are never prefixed; IDL entries always are
            if definition_format is DefinitionFormat.IDL or written > 0:
                header = f"{SEPARATOR}{definition_format.header_label}: {package_resource_name}\n"
                parts.append(header)
                written += len(header)
            parts.append(spec.text)
            written += len(spec.text)
            return iter(sorted(spec.dependencies))

        pending = [append(root_package_resource_name)]
        while pending:
            dependency = next(pending[-1], None)
            if dependency is None:
                pending.pop()
                continue
            if dependency in seen:
                continue
            seen.add(dependency)
            pending.append(append(dependency))

        return definition_format, "".join(parts)
