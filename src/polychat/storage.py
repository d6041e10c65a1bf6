"""Concrete implementations for blob storage backends.

The persistence store keeps its whole state in one serialized blob under a
single key, the way a browser keeps tab-scoped session storage. A backend
only has to get, set and delete strings.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Interface for a string key-value blob store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Returns the blob stored under ``key`` or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Stores ``value`` under ``key``, replacing any previous blob."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Removes ``key`` if present."""
        pass


class InMemory(Storage):
    """Keeps blobs in a dictionary; lives as long as the process (the tab)."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class File(Storage):
    """Stores each blob as ``<base_dir>/<key>.json``.

    Writes go to a temporary file that is renamed over the target, so a
    reader never sees a half-written blob.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.base_dir / f"{safe_key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
