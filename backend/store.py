"""
Durable key-value snapshots: one JSON file per record under the data dir.

Records are read once at startup and rewritten in full after each mutation.
Writes go through a temp file and os.replace so a crash never leaves a
half-written record behind.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from errors import StorageError

logger = logging.getLogger(__name__)


class JsonStore:
    """Flat snapshot store keyed by record name (e.g. "sessions")."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._locks: dict[str, asyncio.Lock] = {}

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def read(self, key: str) -> Optional[Any]:
        """Load a record. Missing or unreadable records return None."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load %s: %s", path, e)
            return None

    def _write_sync(self, key: str, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.directory), prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    async def write(self, key: str, data: Any) -> None:
        """Serialize and persist a record off the event loop.

        Writes of the same record are serialized; the caller's in-memory state
        is left untouched if the write fails.
        """
        async with self._lock(key):
            try:
                payload = json.dumps(data, indent=2, ensure_ascii=False)
                await asyncio.to_thread(self._write_sync, key, payload)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to persist %s: %s", key, e)
                raise StorageError(f"Failed to persist {key}: {e}") from e
