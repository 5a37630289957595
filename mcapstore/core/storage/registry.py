"""
Lookup of storage plugins by identifier.

Plugins advertise themselves through the ``mcapstore.storage_plugins``
entry-point group; hosts may also register factories directly.
"""

from importlib.metadata import entry_points
from typing import Callable, Dict, List

from mcapstore.core.errors import PluginNotFoundError
from mcapstore.core.storage.interface import StorageInterface
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)

ENTRY_POINT_GROUP = "mcapstore.storage_plugins"

StorageFactory = Callable[[], StorageInterface]


class StoragePluginRegistry:
    """Maps storage identifiers to plugin factories."""

    def __init__(self, load_entry_points: bool = True):
        """
        Initialize the registry.

        Args:
            load_entry_points: Discover installed plugins on first lookup
        """
        self._factories: Dict[str, StorageFactory] = {}
        self._entry_points_loaded = not load_entry_points

    def register(self, identifier: str, factory: StorageFactory) -> None:
        """
        Register a plugin factory.

        Args:
            identifier: Storage identifier (e.g. "mcap")
            factory: Callable returning a new, unopened storage
        """
        if identifier in self._factories:
            logger.warning("Replacing storage plugin", identifier=identifier)
        self._factories[identifier] = factory

    def _load_entry_points(self) -> None:
        if self._entry_points_loaded:
            return
        self._entry_points_loaded = True

        for entry_point in entry_points(group=ENTRY_POINT_GROUP):
            if entry_point.name in self._factories:
                continue
            self._factories[entry_point.name] = entry_point.load()
            logger.debug(
                "Discovered storage plugin",
                identifier=entry_point.name,
                target=entry_point.value,
            )

    def identifiers(self) -> List[str]:
        """List the identifiers of all known plugins."""
        self._load_entry_points()
        return sorted(self._factories)

    def create(self, identifier: str) -> StorageInterface:
        """
        Instantiate a plugin.

        Args:
            identifier: Storage identifier

        Returns:
            New, unopened storage

        Raises:
            PluginNotFoundError: If no plugin has that identifier
        """
        self._load_entry_points()

        factory = self._factories.get(identifier)
        if factory is None:
            raise PluginNotFoundError(
                f"No storage plugin '{identifier}', known: {sorted(self._factories)}"
            )
        return factory()
