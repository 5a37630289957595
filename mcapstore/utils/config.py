"""
Configuration for mcapstore.

A storage configuration is a flat YAML document of camelCase writer options
(plus an optional ``logging`` section), layered as:
- Built-in defaults (DEFAULT_CONFIG)
- The storage config file passed to open()
- Environment variables
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigError(ValueError):
    """Raised when a configuration document is malformed."""
    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    "noChunkCRC": False,
    "noAttachmentCRC": False,
    "enableDataCRC": False,
    "noChunking": False,
    "noMessageIndex": False,
    "noSummary": False,
    "chunkSize": 786432,
    "compression": "Zstd",
    "compressionLevel": "Default",
    "forceCompression": False,
    "noRepeatedSchemas": False,
    "noRepeatedChannels": False,
    "noAttachmentIndex": False,
    "noMetadataIndex": False,
    "noChunkIndex": False,
    "noStatistics": False,
    "noSummaryOffsets": False,
    "bufferCapacity": 1024,
    "syncAfterWrite": False,
    "bufferEntireBatch": False,
    "definitionSearchPaths": [],
    "logging": {
        "level": "INFO",
        "format": "json",
        "output": "stdout",
    },
}

# Environment variable -> (config key, parser)
ENV_OVERRIDES = {
    "MCAPSTORE_LOG_LEVEL": ("logging.level", str),
    "MCAPSTORE_DEFINITION_PATH": (
        "definitionSearchPaths",
        lambda raw: [Path(p) for p in raw.split(os.pathsep) if p],
    ),
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge override into a copy of base, recursing into nested mappings.

    Args:
        base: Values to start from
        override: Values that win on conflict

    Returns:
        New merged dictionary
    """
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class Config:
    """
    Layered storage configuration.

    Attributes:
        source: Path of the loaded config file, or None for defaults only
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Load a configuration.

        Args:
            config_file: YAML storage config (None = defaults only)

        Raises:
            ConfigError: If the file does not hold a YAML mapping
            OSError: If the file cannot be read
        """
        self.source = config_file
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_config_file(self, config_file: str) -> None:
        with open(config_file, "r") as f:
            try:
                file_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Storage config {config_file} is not valid YAML: {e}") from e

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigError(
                f"Storage config {config_file} must be a mapping, "
                f"got {type(file_config).__name__}"
            )
        self._config = deep_merge(self._config, file_config)

    def _apply_env_overrides(self) -> None:
        for variable, (key, parse) in ENV_OVERRIDES.items():
            raw = os.getenv(variable)
            if raw:
                self.set(key, parse(raw))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a value by dotted key, e.g. ``logging.level``.

        Args:
            key: Dotted key
            default: Returned when any part of the key is missing

        Returns:
            Configured value
        """
        value: Any = self._config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a value by dotted key, creating intermediate sections.

        Args:
            key: Dotted key
            value: New value
        """
        *sections, leaf = key.split(".")
        target = self._config
        for section in sections:
            target = target.setdefault(section, {})
        target[leaf] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the whole configuration."""
        return copy.deepcopy(self._config)
