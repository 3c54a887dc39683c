"""Shared key-value stores for local caches.

Two interchangeable backends:

- ``JsonFileStore`` keeps one JSON document per key under ``{root}/{key}.json``.
- ``MemoryStore`` keeps values in a dict (tests, throwaway sessions).

Both expose ``get``/``set``/``remove``/``keys``/``raw_size``. Values must be
JSON-serializable; the memory store round-trips them through JSON as well so
both backends hand back detached copies.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

LOG = logging.getLogger(__name__)


class MemoryStore:
    """In-memory store with the same contract as ``JsonFileStore``."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)

    def raw_size(self, key: str) -> int:
        raw = self._data.get(key)
        return len(raw.encode("utf-8")) if raw is not None else 0


class JsonFileStore:
    """File-backed JSON store.

    Usage:
        store = JsonFileStore("~/.cache/whatsapp-sync")
        store.set("whatsapp_config", {"phone": "15550001111"})
        store.get("whatsapp_config")

    Reads of missing or corrupt files return the default (corruption is
    logged). Writes go through a temp file and ``os.replace`` so a crash never
    leaves a half-written document behind.
    """

    def __init__(self, root: str) -> None:
        self.root = os.path.expanduser(root)

    def _path(self, key: str) -> str:
        safe = (key or "").strip().replace(os.sep, "_")
        if not safe:
            raise ValueError("Store key must be a non-empty string")
        return os.path.join(self.root, f"{safe}.json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            LOG.warning("Ignoring unreadable cache file %s: %s", path, exc)
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        os.makedirs(self.root, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def keys(self) -> List[str]:
        if not os.path.isdir(self.root):
            return []
        return sorted(
            name[: -len(".json")]
            for name in os.listdir(self.root)
            if name.endswith(".json") and not name.startswith(".tmp-")
        )

    def raw_size(self, key: str) -> int:
        """Size in bytes of the stored document (0 when absent)."""
        path = self._path(key)
        try:
            return os.path.getsize(path)
        except OSError:
            return 0
