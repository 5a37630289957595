"""
Package share-directory lookup for message definition files.

A locator maps a package name to the directory holding its msg/ and idl files.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

from mcapstore.core.errors import PackageNotFoundError
from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceLocator(ABC):
    """Resolves a package name to its share directory."""

    @abstractmethod
    def get_package_share_directory(self, package: str) -> Path:
        """
        Find the share directory of a package.

        Args:
            package: Package name

        Returns:
            Directory containing the package's msg/ folder

        Raises:
            PackageNotFoundError: If the package is unknown
        """


class AmentIndexLocator(ResourceLocator):
    """
    Locator backed by the ament resource index.

    A package is installed under a prefix when the marker file
    ``<prefix>/share/ament_index/resource_index/packages/<package>`` exists.
    """

    RESOURCE_INDEX_SUBFOLDER = Path("share") / "ament_index" / "resource_index"

    def __init__(self, prefix_paths: Optional[Iterable[Path]] = None):
        """
        Initialize the locator.

        Args:
            prefix_paths: Install prefixes to search. Defaults to the entries
                of the AMENT_PREFIX_PATH environment variable.
        """
        if prefix_paths is None:
            raw = os.environ.get("AMENT_PREFIX_PATH", "")
            prefix_paths = [Path(p) for p in raw.split(os.pathsep) if p]

        self.prefix_paths: List[Path] = [Path(p) for p in prefix_paths]

    def get_package_share_directory(self, package: str) -> Path:
        for prefix in self.prefix_paths:
            marker = prefix / self.RESOURCE_INDEX_SUBFOLDER / "packages" / package
            if marker.is_file():
                return prefix / "share" / package

        raise PackageNotFoundError(
            f"package '{package}' not found, searching: {[str(p) for p in self.prefix_paths]}"
        )


class SearchPathLocator(ResourceLocator):
    """Locator that looks for ``<dir>/<package>`` in a list of directories."""

    def __init__(self, search_paths: Iterable[Path]):
        self.search_paths: List[Path] = [Path(p) for p in search_paths]

    def get_package_share_directory(self, package: str) -> Path:
        for search_path in self.search_paths:
            candidate = search_path / package
            if candidate.is_dir():
                return candidate

        raise PackageNotFoundError(
            f"package '{package}' not found, searching: {[str(p) for p in self.search_paths]}"
        )


def default_locator(search_paths: Optional[Iterable[Path]] = None) -> ResourceLocator:
    """
    Build the locator used when none is supplied.

    Args:
        search_paths: Explicit definition directories; when empty the ament
            index is used

    Returns:
        Resource locator
    """
    search_paths = list(search_paths or [])
    if search_paths:
        logger.debug("Using definition search paths", paths=[str(p) for p in search_paths])
        return SearchPathLocator(search_paths)
    return AmentIndexLocator()
