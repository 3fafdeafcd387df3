"""
Cache Store — opaque string key/value persistence.

The tracker keeps three things here: the raw TLE text, the epoch (ms) it
was fetched at, and the user's chosen ground location. Values are plain
strings; callers do their own encoding.

Two implementations:
  MemoryCacheStore    → lives as long as the process (tests, ephemeral runs)
  JsonFileCacheStore  → one JSON object on disk, survives restarts
"""

import json
from pathlib import Path
from typing import Dict, Optional, Protocol

from constellation_tracker.logging_config import get_logger

logger = get_logger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: Optional[str] = None) -> None: ...


class MemoryCacheStore:
    """Dictionary-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)


class JsonFileCacheStore:
    """
    Store backed by a single JSON file.

    The whole file is rewritten on every set(). That is fine for the
    handful of keys the tracker uses. A missing or corrupt file reads as
    an empty store.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring cache file {self.path}: not a JSON object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)
        self._save()

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)
        self._save()
