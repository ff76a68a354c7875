"""File and in-memory cache stores.

Both swallow storage failures: a corrupt file or a full disk reads as an
empty cache and drops writes, logging a warning.
"""
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional
from repo_aggregator.domain.cache_interface import ICacheStore
from repo_aggregator.domain.models import CacheEntry


logger = logging.getLogger(__name__)


def entry_from_raw(key: str, raw: Any) -> Optional[CacheEntry]:
    """Validate a stored ``{stored_at, payload}`` object."""
    if not isinstance(raw, dict):
        return None
    stored_at = raw.get("stored_at")
    if isinstance(stored_at, bool) or not isinstance(stored_at, int):
        return None
    return CacheEntry(key=key, stored_at=stored_at, payload=raw.get("payload"))


class InMemoryCacheStore(ICacheStore):
    """Cache kept for the lifetime of the process only."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return entry_from_raw(key, self._entries.get(key))

    def set(self, key: str, payload: Any, stored_at: int) -> bool:
        self._entries[key] = {"stored_at": stored_at, "payload": payload}
        return True

    def close(self) -> None:
        self._entries.clear()


class JsonFileCacheStore(ICacheStore):
    """Cache persisted as a single JSON document on disk.

    The document is re-read on every ``get`` so that separate runs, and
    separate processes sharing the file, see each other's writes. Writes go
    through a temporary file and an atomic rename.
    """

    def __init__(self, path: str):
        """Initialize file store.

        Args:
            path: Location of the JSON cache document
        """
        self._path = path

    def _read_all(self) -> Dict[str, Any]:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Cache file {self._path} unreadable, treating as empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return entry_from_raw(key, self._read_all().get(key))

    def set(self, key: str, payload: Any, stored_at: int) -> bool:
        data = self._read_all()
        data[key] = {"stored_at": stored_at, "payload": payload}
        directory = os.path.dirname(os.path.abspath(self._path))

        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_path, self._path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Dropping cache write for {key}: {e}")
            return False

        return True

    def close(self) -> None:
        pass
