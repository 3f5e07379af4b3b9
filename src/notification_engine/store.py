"""
Key-value stores backing engine persistence.

A store maps a key to a JSON-compatible value. ``JsonFileStore`` keeps one
``<key>.json`` file per key under a directory; ``InMemoryStore`` keeps the
serialized text in a dict so values always round-trip through JSON.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_STORE_DIR
from .errors import PersistenceCorruptionError

logger = logging.getLogger(__name__)


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


class InMemoryStore:
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise PersistenceCorruptionError(f"Stored value for {key!r} is not valid JSON: {e}") from e

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def set_raw(self, key: str, raw: str) -> None:
        """Store text as-is, bypassing serialization."""
        self._data[key] = raw


class JsonFileStore:
    """Durable store writing one JSON document per key."""

    def __init__(self, base_dir: str = DEFAULT_STORE_DIR):
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            raise PersistenceCorruptionError(f"Corrupt store file {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        _ensure_dir(path.parent)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)
        os.replace(tmp, path)
        logger.debug(f"Wrote {key} to {path}")
