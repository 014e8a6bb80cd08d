"""
Base data loader class providing common functionality.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Union

import pandas as pd

logger = logging.getLogger(__name__)


class DataLoader(ABC):
    """
    Abstract base class for data loaders.

    Paths may be given as absolute paths, paths relative to the project
    root, or keys of the ``files`` section of the configuration
    (e.g. "annotation", "beta_filtered").
    """

    def __init__(self, config: Any):
        """
        Initialize data loader with configuration.

        Args:
            config: Configuration object with paths and parameters
        """
        self.config = config
        self._cache: Dict[str, pd.DataFrame] = {}

    @abstractmethod
    def load(self, file_path: Union[str, Path], **kwargs) -> pd.DataFrame:
        """
        Load data from file.

        Args:
            file_path: Path to data file, or a configured file key
            **kwargs: Additional loading parameters

        Returns:
            Loaded data as DataFrame
        """
        pass

    def _resolve_path(self, file_path: Union[str, Path]) -> Path:
        """Resolve a configured file key or a path relative to the project root."""
        files = getattr(self.config, "files", {})
        if isinstance(file_path, str) and file_path in files:
            return self.config.get_data_path(file_path)
        path = Path(file_path)
        if not path.is_absolute():
            path = self.config.base_dir / path
        return path

    def _validate_file(self, file_path: Path) -> None:
        """Validate that file exists and is readable."""
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")
        if not file_path.is_file():
            raise ValueError(f"Path is not a file: {file_path}")

    def _cached(self, path: Path, reader: Callable[[Path], pd.DataFrame]) -> pd.DataFrame:
        """
        Read a table once per path; callers always receive a copy.

        Args:
            path: Resolved file path (cache key)
            reader: Function reading the table from the path
        """
        key = str(path)
        if key in self._cache:
            logger.debug(f"Loading from cache: {path.name}")
        else:
            self._validate_file(path)
            self._cache[key] = reader(path)
        return self._cache[key].copy()

    def _invalidate(self, path: Path) -> None:
        """Drop a path from the cache after it was rewritten."""
        self._cache.pop(str(path), None)

    def clear_cache(self) -> None:
        """Clear the data cache."""
        self._cache.clear()
        logger.debug("Data cache cleared")
