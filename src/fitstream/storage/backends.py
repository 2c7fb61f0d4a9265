"""
Key/value storage backends for the history store.

A backend only moves strings in and out of its medium. It may raise on
failure; the history store decides how failures degrade.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@runtime_checkable
class StorageBackend(Protocol):
    """Injected read/write operations of a persistence medium."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store a value under a key, replacing any previous value."""
        ...

    def remove_item(self, key: str) -> None:
        """Remove a key; removing an absent key is not an error."""
        ...


class MemoryStorage:
    """Session-scoped in-memory storage."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class FileStorage:
    """Stores each key as one JSON file inside a directory.

    Writes use a temp file and rename, so a crash never leaves a
    half-written value behind.

    Attributes:
        directory: Directory holding the files (created on first write)
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        """File path a key is stored at."""
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get_item(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._atomic_write(self.path_for(key), value)

    def remove_item(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def _atomic_write(self, path: Path, content: str) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to write {path}")
            raise
