"""
YAML source descriptor loading.

Descriptors live in ``<config_dir>/<source>.yml`` (or ``.yaml``). Loaded
descriptors are cached per name; invalidate() drops the cache so edited
files are picked up by the next run.
"""

from pathlib import Path
from typing import Dict, Optional

import yaml

from core.config import settings
from core.exceptions import ConfigurationError
from schemas.source import SourceDescriptor, parse_source_descriptor
import logging

logger = logging.getLogger(__name__)

EXTENSIONS = (".yml", ".yaml")


class SourceConfigLoader:
    """
    Load and validate source descriptors from a directory.

    - Source names may not contain path separators or ``..``
    - A descriptor without a name takes the file name
    - Results are cached until invalidated
    """

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir or settings.INGESTION_CONFIG_DIR)
        self._cache: Dict[str, SourceDescriptor] = {}

    @staticmethod
    def validate_source_name(source_name: str) -> None:
        if not source_name or not source_name.strip():
            raise ConfigurationError("Source name cannot be blank")
        if ".." in source_name or "/" in source_name or "\\" in source_name:
            raise ConfigurationError(
                f"Source name contains invalid characters: {source_name}",
                context={"source_name": source_name}
            )

    def path_for(self, source_name: str) -> Optional[Path]:
        for extension in EXTENSIONS:
            candidate = self.config_dir / f"{source_name}{extension}"
            if candidate.is_file():
                return candidate
        return None

    def load(self, source_name: str) -> SourceDescriptor:
        """
        Descriptor for a source, from cache when already loaded.

        Raises:
            ConfigurationError: Missing, unreadable, empty or invalid file
        """
        self.validate_source_name(source_name)
        if source_name in self._cache:
            return self._cache[source_name]

        path = self.path_for(source_name)
        if path is None:
            raise ConfigurationError(
                f"No ingestion configuration found for source '{source_name}'. "
                f"Expected file: {self.config_dir / (source_name + '.yml')}",
                context={"source_name": source_name, "config_dir": str(self.config_dir)}
            )

        logger.debug(f"Loading ingestion configuration for source: {source_name}")
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read configuration file for source '{source_name}'",
                context={"source_name": source_name, "path": str(path)},
                original_exception=e
            )
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration for source '{source_name}'",
                context={"source_name": source_name, "path": str(path)},
                original_exception=e
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file is empty or invalid for source: {source_name}",
                context={"source_name": source_name, "path": str(path)}
            )

        if not str(data.get("name") or "").strip():
            logger.debug(f"Setting default name '{source_name}' for source configuration")
            data["name"] = source_name

        descriptor = parse_source_descriptor(data, source_name)
        self._cache[source_name] = descriptor
        logger.info(f"Successfully loaded configuration for source: {source_name} (name: {descriptor.name})")
        return descriptor

    def invalidate(self, source_name: Optional[str] = None) -> None:
        """Forget one cached descriptor, or all of them."""
        if source_name is None:
            self._cache.clear()
        else:
            self._cache.pop(source_name, None)
