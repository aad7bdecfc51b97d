"""
Local key-value storage for form drafts.

Drafts are stored per user under ``<DRAFT_KEY_PREFIX><user_id>``. Two
backends are provided: an in-memory store and a directory of files.
"""

import os
import re
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from config.settings import settings

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class LocalStoreError(Exception):
    """Raised when a local storage read or write fails."""
    pass


def draft_key(user_id: str) -> str:
    """Storage key for a user's draft."""
    return f"{settings.DRAFT_KEY_PREFIX}{user_id}"


class LocalStore(ABC):
    """Synchronous byte store keyed by string."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryLocalStore(LocalStore):
    """Process-local dictionary store."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class FileLocalStore(LocalStore):
    """
    One file per key inside a directory.

    Writes go through a temporary file and an atomic replace so a crash
    never leaves a half-written draft behind.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _ensure_dir(self) -> None:
        """Create the storage directory if it does not exist."""
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LocalStoreError(f"Could not read {path.name}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        path = self._path_for(key)
        try:
            self._ensure_dir()
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        except OSError as e:
            raise LocalStoreError(f"Could not write {path.name}: {e}") from e
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise LocalStoreError(f"Could not write {path.name}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise LocalStoreError(f"Could not remove {path.name}: {e}") from e


def create_local_store() -> LocalStore:
    """Build the store selected by LOCAL_STORE_DIR."""
    if settings.LOCAL_STORE_DIR:
        logger.info(f"[Store] Using file drafts in {settings.LOCAL_STORE_DIR}")
        return FileLocalStore(settings.LOCAL_STORE_DIR)
    return InMemoryLocalStore()
