"""Durable local storage for anonymous carts.

The port mirrors a browser's key/value local storage: string keys, string
values. ``InMemoryLocalStorage`` backs tests and short-lived sessions;
``FileLocalStorage`` keeps one JSON document per key on disk so a guest's
cart survives restarts.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path


class LocalStorage(ABC):
    """Abstract key/value storage local to one shopper's device."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete the key. Removing an absent key is not an error."""
        ...


class InMemoryLocalStorage(LocalStorage):
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileLocalStorage(LocalStorage):
    """One file per key under ``directory``; writes are atomic renames."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
